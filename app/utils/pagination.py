import math


def paginate(query, page: int = 1, limit: int = 10) -> dict:
    """Apply offset/limit to a query and return items with page metadata."""
    page = max(1, page)
    limit = max(1, limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "items": items,
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }
