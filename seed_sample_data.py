import asyncio
import logging

from db import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("cat-1", "Chest", "#ff4757"),
    ("cat-2", "Back", "#2ed573"),
    ("cat-3", "Legs", "#1e90ff"),
    ("cat-4", "Arms", "#ffa502"),
    ("cat-5", "Shoulders", "#a55eea"),
    ("cat-6", "Core", "#2f3542"),
    ("cat-7", "Cardio", "#ff6b81"),
]

DEFAULT_EXERCISES = [
    ("ex-1", "Bench Press", "A compound exercise that targets the chest, shoulders, and triceps.", "cat-1"),
    ("ex-2", "Deadlift", "A compound exercise that targets the back, glutes, and hamstrings.", "cat-2"),
    ("ex-3", "Squat", "A compound exercise that targets the quadriceps, hamstrings, and glutes.", "cat-3"),
    ("ex-4", "Bicep Curl", "An isolation exercise that targets the biceps.", "cat-4"),
    ("ex-5", "Shoulder Press", "A compound exercise that targets the shoulders and triceps.", "cat-5"),
]


async def seed(store: EntityStore) -> bool:
    """Insert the default catalog when no categories exist yet."""
    if await store.categories.fetch_all_categories():
        logger.info("Catalog already contains categories")
        return False
    async with store.transaction() as conn:
        for cid, name, color in DEFAULT_CATEGORIES:
            await store.categories.upsert(cid, name, color, conn)
        for eid, name, description, category in DEFAULT_EXERCISES:
            await store.exercises.upsert(eid, name, description, category, None, conn)
    logger.info(
        "Seeded %d categories and %d exercises",
        len(DEFAULT_CATEGORIES),
        len(DEFAULT_EXERCISES),
    )
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed(EntityStore()))
