import logging
from typing import Dict

import asyncpg

logger = logging.getLogger(__name__)


class AsyncPostgresClient:
    """
    Direct PostgreSQL access for maintenance work the table API cannot express.
    """
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    @staticmethod
    def _affected(status: str) -> int:
        """Turns a command tag such as 'UPDATE 3' into 3."""
        try:
            return int(str(status).split()[-1])
        except (ValueError, IndexError):
            return 0

    async def backfill_class_links(self) -> Dict[str, int]:
        """
        Adds id-based links from classes to teachers and categories and fills
        them from the current name strings. Rows already linked are left alone,
        so running it twice is harmless.
        """
        add_columns = """
            ALTER TABLE classes ADD COLUMN IF NOT EXISTS teacher_id UUID REFERENCES teachers(id) ON DELETE RESTRICT;
            ALTER TABLE classes ADD COLUMN IF NOT EXISTS category_id UUID REFERENCES categories(id) ON DELETE RESTRICT;
        """
        link_teachers = """
            UPDATE classes AS c SET teacher_id = t.id
            FROM teachers AS t
            WHERE c.teacher_id IS NULL AND c.teacher = t.name
              AND (SELECT COUNT(*) FROM teachers t2 WHERE t2.name = c.teacher) = 1;
        """
        link_categories = """
            UPDATE classes AS c SET category_id = k.id
            FROM categories AS k
            WHERE c.category_id IS NULL AND c.category = k.name
              AND (SELECT COUNT(*) FROM categories k2 WHERE k2.name = c.category) = 1;
        """
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                await connection.execute(add_columns)
                teacher_status = await connection.execute(link_teachers)
                category_status = await connection.execute(link_categories)

        result = {
            "teacher_links": self._affected(teacher_status),
            "category_links": self._affected(category_status),
        }
        logger.info(f"Class link back-fill finished: {result}")
        return result
