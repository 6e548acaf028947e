#!/usr/bin/env python3
"""
Script to examine the contents of the learning cards database
to see what chats, pathways and progress are actually stored.
"""

import sys
import os

# Add the current directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from llm_learning_cards import db
from llm_learning_cards.chat import content_text, parse_message

def check_database_contents() -> None:
    """Examine the database contents."""
    print("🔍 Examining Learning Cards Database Contents")
    print("=" * 60)

    session = db.get_session()

    try:
        users: list[db.User] = session.query(db.User).all()
        print(f"\n👤 USERS ({len(users)} items):")
        for i, user in enumerate(users[-10:], 1):  # Show last 10
            print(f"  {i:2d}. {user.email} | ID: {user.id}")

        chats: list[db.Chat] = session.query(db.Chat).order_by(db.Chat.created_at).all()
        print(f"\n💬 CHATS ({len(chats)} items):")
        for i, chat in enumerate(chats[-10:], 1):
            print(f"  {i:2d}. {chat.title} | {chat.visibility} | {chat.created_at:%Y-%m-%d %H:%M}")
        if len(chats) > 10:
            print(f"     ... and {len(chats) - 10} more items")

        messages: list[db.Message] = session.query(db.Message).order_by(db.Message.created_at).all()
        print(f"\n📨 MESSAGES ({len(messages)} items):")
        for i, message in enumerate(messages[-10:], 1):
            parsed = parse_message(message)
            preview = content_text(message.content).replace("\n", " ")[:60]
            print(f"  {i:2d}. [{message.role}] {parsed.kind} | {preview}")
        if len(messages) > 10:
            print(f"     ... and {len(messages) - 10} more items")

        kinds: dict[str, int] = {}
        for message in messages:
            kind = parse_message(message).kind
            kinds[kind] = kinds.get(kind, 0) + 1
        print(f"\n🧭 REPLY KINDS: {kinds or 'none'}")

        votes: list[db.Vote] = session.query(db.Vote).all()
        upvotes = sum(1 for v in votes if v.is_upvoted)
        print(f"\n👍 VOTES ({len(votes)} items): {upvotes} up, {len(votes) - upvotes} down")

        roadmaps: list[db.Roadmap] = session.query(db.Roadmap).all()
        print(f"\n🗺️  ROADMAPS ({len(roadmaps)} items):")
        for i, roadmap in enumerate(roadmaps[-10:], 1):
            step_count = session.query(db.RoadmapStep).filter_by(roadmap_id=roadmap.id).count()
            print(f"  {i:2d}. {roadmap.title} | {step_count} steps")

        items: list[db.StorageItem] = session.query(db.StorageItem).all()
        print(f"\n📦 STORAGE ITEMS ({len(items)} items):")
        for i, item in enumerate(items[-10:], 1):
            print(f"  {i:2d}. {item.key} | {len(item.value)} characters")

    except Exception as e:
        print(f"❌ Error examining database: {e}")
        import traceback
        traceback.print_exc()
    finally:
        session.close()

if __name__ == "__main__":
    # Check if database exists
    if not os.path.exists(db.DB_PATH):
        print(f"❌ Database file '{db.DB_PATH}' not found!")
        print("   Make sure you're running this from the correct directory or set LLM_CARDS_DB.")
        sys.exit(1)

    check_database_contents()
