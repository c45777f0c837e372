from database import db

SORT_FIELDS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "order_number": "order_number",
    "total": "total",
    "status": "status",
}


async def paginate_orders(
    query: dict,
    page: int,
    limit: int,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    """Run an order query with skip/limit pagination"""
    total_count = await db.orders.count_documents(query)

    skip = (page - 1) * limit
    sort_direction = 1 if sort_order == "asc" else -1
    sort_field = SORT_FIELDS.get(sort_by, "created_at")

    orders = await db.orders.find(query, {"_id": 0}).sort([
        (sort_field, sort_direction)
    ]).skip(skip).limit(limit).to_list(limit)

    return {
        "orders": orders,
        "pagination": {
            "page": page,
            "limit": limit,
            "total_count": total_count,
            "total_pages": (total_count + limit - 1) // limit
        }
    }
