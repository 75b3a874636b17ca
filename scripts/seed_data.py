from __future__ import annotations

import argparse

from services.portal.app.db.database import db_session
from services.portal.app.db.init_db import init_db
from services.portal.app.db.models import MenuItemRow, RestaurantRow, ServiceTypeRow

SERVICE_TYPES = (
    ("phone", "Phone repair"),
    ("laptop", "Laptop repair"),
)

# slug, name, description, opening, closing, delivery fee, minimum order (cents)
RESTAURANTS = (
    ("starbucks", "Starbucks", "Coffee & Beverages", "06:00", "22:00", 299, 500),
    ("pizza-hut", "Pizza Hut", "Pizza & Italian", "11:00", "23:00", 399, 1500),
    ("subway", "Subway", "Sandwiches & Subs", "07:00", "22:00", 249, 800),
    ("baskin-robbins", "Baskin Robbins", "Ice Cream & Desserts", "10:00", "22:00", 299, 600),
    ("mcdonalds", "McDonald's", "Fast Food & Burgers", "06:00", "24:00", 299, 1000),
)

# slug -> (name, price cents, category, preparation minutes)
MENUS = {
    "starbucks": (
        ("Latte", 400, "Coffee", 5),
        ("Cappuccino", 425, "Coffee", 5),
        ("Blueberry Muffin", 295, "Bakery", 2),
    ),
    "pizza-hut": (
        ("Pepperoni Pizza", 1299, "Pizza", 20),
        ("Margherita Pizza", 1099, "Pizza", 20),
        ("Garlic Bread", 499, "Sides", 10),
    ),
    "subway": (
        ("Italian BMT", 749, "Subs", 8),
        ("Veggie Delite", 599, "Subs", 8),
    ),
    "baskin-robbins": (
        ("Scoop of Mint Chocolate Chip", 349, "Ice Cream", 3),
        ("Hot Fudge Sundae", 599, "Sundaes", 5),
    ),
    "mcdonalds": (
        ("Big Mac", 599, "Burgers", 7),
        ("Medium Fries", 299, "Sides", 4),
    ),
}


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed campus portal catalog data")
    parser.add_argument(
        "--skip-menus", action="store_true", help="Only seed service types and restaurants"
    )
    args = parser.parse_args()

    init_db()

    db = db_session()
    try:
        for name, description in SERVICE_TYPES:
            if db.query(ServiceTypeRow).filter(ServiceTypeRow.name == name).count() == 0:
                db.add(ServiceTypeRow(id=f"svc-{name}", name=name, description=description))

        for slug, name, description, opens, closes, fee, minimum in RESTAURANTS:
            restaurant_id = f"rest-{slug}"
            if db.get(RestaurantRow, restaurant_id) is None:
                db.add(
                    RestaurantRow(
                        id=restaurant_id,
                        name=name,
                        slug=slug,
                        description=description,
                        opening_time=opens,
                        closing_time=closes,
                        delivery_fee_cents=fee,
                        minimum_order_cents=minimum,
                    )
                )

            if args.skip_menus:
                continue

            existing_menu = (
                db.query(MenuItemRow).filter(MenuItemRow.restaurant_id == restaurant_id).count()
            )
            if existing_menu == 0:
                for index, (item_name, price, category, prep) in enumerate(MENUS.get(slug, ())):
                    db.add(
                        MenuItemRow(
                            id=f"{restaurant_id}-{index + 1}",
                            restaurant_id=restaurant_id,
                            name=item_name,
                            price_cents=price,
                            category=category,
                            preparation_time=prep,
                        )
                    )

        db.commit()
    finally:
        db.close()

    print("Seeded service types, restaurants and menus")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
