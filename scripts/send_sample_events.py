import random
import sys
import time
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv

from mixpanel_driver import DriverError, MixpanelDriver

load_dotenv()

# Simulated users
DEVICE_IDS = [f"device_{i:04d}" for i in range(1, 501)]
USER_IDS = [f"user_{i:04d}" for i in range(1, 501)]

PRODUCTS = [
    {"id": "prod_001", "name": "Wireless Headphones", "category": "Electronics", "price": 79.99},
    {"id": "prod_002", "name": "Running Shoes", "category": "Sports", "price": 129.99},
    {"id": "prod_003", "name": "Coffee Maker", "category": "Home", "price": 89.99},
    {"id": "prod_004", "name": "Laptop Backpack", "category": "Accessories", "price": 49.99},
    {"id": "prod_005", "name": "Yoga Mat", "category": "Sports", "price": 29.99},
    {"id": "prod_006", "name": "Smart Watch", "category": "Electronics", "price": 299.99},
    {"id": "prod_007", "name": "Desk Lamp", "category": "Home", "price": 39.99},
    {"id": "prod_008", "name": "Sunglasses", "category": "Accessories", "price": 89.99},
]

CATEGORIES = ["Electronics", "Sports", "Home", "Accessories"]
PLATFORMS = ["iOS", "Android", "Web"]
COUNTRIES = ["CZ", "SK", "US", "UK", "DE"]

IMPORT_CHUNK = 2000


def event_time(days_ago=0, hours_ago=0):
    """Timestamp for an event in the past"""
    return datetime.now(timezone.utc) - timedelta(days=days_ago, hours=hours_ago)


def create_user_journey(device_id, user_id, day_offset):
    """Build a plausible shopping session as flat event mappings"""
    events = []
    platform = random.choice(PLATFORMS)
    country = random.choice(COUNTRIES)

    def add(name, hours_ago, **properties):
        events.append({
            "event": name,
            "device_id": device_id,
            "user_id": user_id,
            "time": event_time(days_ago=day_offset, hours_ago=hours_ago),
            "platform": platform,
            "country": country,
            **properties
        })

    if random.random() < 0.3:
        add("Sign up", 6, signup_method=random.choice(["email", "google", "facebook"]))

    add("Login", 5)

    for i in range(random.randint(2, 8)):
        product = random.choice(PRODUCTS)
        add("View Product", 5 - i * 0.1,
            product_id=product["id"], product_name=product["name"],
            category=product["category"], price=product["price"])

    if random.random() < 0.5:
        add("View Category", 4, category=random.choice(CATEGORIES))

    cart_items = random.sample(PRODUCTS, random.randint(1, 3))
    for item in cart_items:
        add("Add to Cart", 3, product_id=item["id"], price=item["price"],
            quantity=random.randint(1, 3))

    # 60% conversion
    if random.random() < 0.6:
        total_amount = round(sum(item["price"] for item in cart_items), 2)
        add("Start Checkout", 2, cart_total=total_amount, items_count=len(cart_items))
        add("Complete Purchase", 1.5,
            revenue=total_amount,
            payment_method=random.choice(["credit_card", "paypal", "apple_pay"]),
            products=[{"id": item["id"], "price": item["price"]} for item in cart_items])

    if random.random() < 0.7:
        add("Logout", 1)

    return events


def track_today(client, users):
    """Send today's sessions through the batched /track path"""
    count = 0
    for device_id, user_id in users:
        for event in create_user_journey(device_id, user_id, 0):
            name = event.pop("event")
            client.track(name, event)
            count += 1

    result = client.flush()
    print(f"✓ Tracked {count} live events (last flush attempted {result['attempted']})")


def backfill(client, days):
    """Import past sessions through /import in chunks of 2,000"""
    all_events = []
    for day in range(1, days + 1):
        daily_users = random.sample(list(zip(DEVICE_IDS, USER_IDS)), random.randint(20, 80))
        for device_id, user_id in daily_users:
            all_events.extend(create_user_journey(device_id, user_id, day))

    print(f"📊 Generated {len(all_events)} historical events over {days} days")

    imported = 0
    for i in range(0, len(all_events), IMPORT_CHUNK):
        chunk = all_events[i:i + IMPORT_CHUNK]
        try:
            result = client.track_many(chunk)
        except DriverError as e:
            print(f"✗ Import failed at chunk {i // IMPORT_CHUNK + 1}: {e}")
            if e.retryable:
                print("  (retryable, try again later)")
            break
        imported += result["accepted"]
        time.sleep(0.5)

    print(f"✓ Imported {imported} historical events")


def main():
    print("🚀 Sending sample data to Mixpanel...\n")

    with MixpanelDriver.from_env() as client:
        users = random.sample(list(zip(DEVICE_IDS, USER_IDS)), 25)
        track_today(client, users)

        if "--backfill" in sys.argv:
            if client.config.service_account is None:
                print("✗ Backfill needs MIXPANEL_SERVICE_ACCOUNT_USERNAME, _PASSWORD and MIXPANEL_PROJECT_ID")
            else:
                backfill(client, days=30)

        metrics = client.batcher.metrics
        print(f"\n📤 Batches sent: {metrics.batches_sent}, failed: {metrics.batches_failed}")

    print("\n✅ Done! Events should show up in Mixpanel shortly.")


if __name__ == "__main__":
    main()
