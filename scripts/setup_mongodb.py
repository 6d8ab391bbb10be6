#!/usr/bin/env python3
"""
MongoDB Setup Script

This script helps you set up MongoDB for the Sage FAQ bot.
It will:
1. Test your MongoDB connection
2. Create the required collections
3. Create the indexes used by FAQ lookups and usage statistics
4. Optionally import FAQs from a JSON file
5. Optionally switch .env to the MongoDB store

Usage:
    python scripts/setup_mongodb.py
"""

import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
load_dotenv()

import logging

from config.settings import get_settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def print_banner():
    """Print setup banner."""
    print("\n" + "=" * 60)
    print("  🍃 MongoDB Setup")
    print("  Sage FAQ Bot")
    print("=" * 60 + "\n")


def get_mongodb_uri():
    """Get MongoDB URI from environment or user input."""
    uri = os.getenv("MONGODB_URI", "")

    if uri and "username:password" not in uri:
        return uri

    print("\n📝 MongoDB Connection URI")
    print("-" * 40)
    print("Format: mongodb+srv://<username>:<password>@<cluster>.mongodb.net/")
    print("    or: mongodb://localhost:27017/\n")

    uri = input("Enter your MongoDB URI: ").strip()
    return uri


def test_connection(uri: str) -> bool:
    """Test MongoDB connection."""
    from pymongo import MongoClient
    from pymongo.errors import ServerSelectionTimeoutError, ConfigurationError, PyMongoError

    print("\n🔌 Testing MongoDB Connection...")

    try:
        client = MongoClient(uri, serverSelectionTimeoutMS=10000)
        client.admin.command('ping')
        print("✅ Successfully connected to MongoDB!")

        server_info = client.server_info()
        print(f"   Server version: {server_info.get('version', 'unknown')}")

        return True

    except ServerSelectionTimeoutError:
        print("❌ Connection timeout. Check your URI and network.")
        return False
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        return False
    except PyMongoError as e:
        print(f"❌ Connection failed: {e}")
        return False


def setup_collections(uri: str, db_name: str, collection_names):
    """Create any missing collections and return the database handle."""
    from pymongo import MongoClient

    client = MongoClient(uri)
    db = client[db_name]
    existing = set(db.list_collection_names())

    for name in collection_names:
        print(f"\n📦 Setting up collection: {db_name}.{name}")
        if name in existing:
            count = db[name].count_documents({})
            print(f"✅ Collection exists with {count} documents")
        else:
            db.create_collection(name)
            print(f"✅ Created collection: {name}")

    return db


def create_indexes(db, store_config):
    """Create the indexes the bot relies on."""
    from pymongo import ASCENDING, DESCENDING

    print("\n🔍 Creating indexes...")

    # Question text is unique within a category
    db[store_config.faq_collection].create_index(
        [("category", ASCENDING), ("question", ASCENDING)],
        unique=True,
        name="category_question_unique",
    )

    # Per-user statistics filter on history entries
    stats = db[store_config.stats_collection]
    stats.create_index([("usageHistory.userId", ASCENDING)], name="history_user")
    stats.create_index([("usageCount", DESCENDING)], name="usage_count")

    db[store_config.responses_collection].create_index(
        [("timestamp", DESCENDING)], name="response_time"
    )

    print("✅ Indexes created")


def seed_faqs(db, store_config):
    """Import FAQs from a JSON file, keyed on category and question."""
    from pymongo.errors import PyMongoError

    from sage.faq_store import load_faq_file

    print("\n📚 Import FAQs")
    print("-" * 40)
    print("File format: [{\"question\": ..., \"answer\": ..., \"category\": ..., \"link\": ...}]")

    default = store_config.faq_seed_file or ""
    prompt = f"FAQ JSON file [{default}]: " if default else "FAQ JSON file (blank to skip): "
    path = input(prompt).strip() or default
    if not path:
        print("Skipping FAQ import")
        return 0

    try:
        documents = load_faq_file(path)
    except (OSError, ValueError) as e:
        print(f"❌ Could not read {path}: {e}")
        return 0

    collection = db[store_config.faq_collection]
    imported = 0
    try:
        for doc in documents:
            result = collection.update_one(
                {"category": doc["category"], "question": doc["question"]},
                {"$setOnInsert": doc},
                upsert=True,
            )
            if result.upserted_id is not None:
                imported += 1
    except PyMongoError as e:
        print(f"❌ Import failed after {imported} FAQs: {e}")
        return imported

    print(f"✅ Imported {imported} new FAQs ({len(documents) - imported} already present)")
    return imported


def update_env_file():
    """Update .env file to use MongoDB."""
    env_path = project_root / ".env"

    print("\n📝 Update Configuration")
    print("-" * 40)

    if not env_path.exists():
        print("ℹ️  No .env file found; STORE_PROVIDER defaults to mongodb")
        return

    response = input("Switch to MongoDB as the document store? [y/N]: ").strip().lower()
    if response != 'y':
        print("Configuration unchanged")
        return

    with open(env_path, "r") as f:
        content = f.read()

    if "STORE_PROVIDER=" in content:
        content = content.replace("STORE_PROVIDER=memory", "STORE_PROVIDER=mongodb")
    else:
        content += "\nSTORE_PROVIDER=mongodb\n"

    with open(env_path, "w") as f:
        f.write(content)

    print("✅ Updated .env to use MongoDB")


def main():
    """Main setup flow."""
    print_banner()

    uri = get_mongodb_uri()
    if not uri:
        print("❌ MongoDB URI is required")
        return

    if not test_connection(uri):
        print("\n❌ Could not connect to MongoDB. Please check your URI.")
        return

    store_config = get_settings().store
    db_name = store_config.mongodb_database
    collection_names = [
        store_config.faq_collection,
        store_config.client_data_collection,
        store_config.stats_collection,
        store_config.responses_collection,
    ]

    db = setup_collections(uri, db_name, collection_names)
    create_indexes(db, store_config)
    seed_faqs(db, store_config)
    update_env_file()

    print("\n" + "=" * 60)
    print("  ✅ MongoDB Setup Complete!")
    print("=" * 60)
    print(f"""
Configuration:
  Database:    {db_name}
  Collections: {', '.join(collection_names)}

Next Steps:
  1. Ensure your .env has the correct MONGODB_URI
  2. Leave STORE_PROVIDER unset (mongodb is the default) or set it to mongodb
  3. Run the bot: python run_bot.py
""")


if __name__ == "__main__":
    main()
