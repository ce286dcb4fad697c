from __future__ import annotations

from inventaris.domain.contracts import Notification
from inventaris.infrastructure.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    @staticmethod
    def _to_notification(row) -> Notification:
        data = dict(row)
        return Notification(
            id=int(data["id"]),
            user_id=data["user_id"],
            message=data["message"],
            link=data.get("link"),
            is_read=bool(data["is_read"]),
            created_at=str(data["created_at"]),
        )

    def create(self, db, *, user_id: str, message: str, link: str | None, created_at: str) -> int:
        cursor = db.execute(
            """
            INSERT INTO notifications (user_id, message, link, is_read, created_at)
            VALUES (?, ?, ?, 0, ?)
            RETURNING id
            """,
            (user_id, message, link, created_at),
        )
        return self.returning_value(cursor)

    def list_for_user(self, db, user_id: str, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        unread_sql = " AND is_read = 0" if unread_only else ""
        rows = db.execute(
            f"""
            SELECT id, user_id, message, link, is_read, created_at
            FROM notifications
            WHERE user_id = ?{unread_sql}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (user_id, int(limit)),
        ).fetchall()
        return [self._to_notification(row) for row in rows]

    def unread_count(self, db, user_id: str) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM notifications WHERE user_id = ? AND is_read = 0",
            (user_id,),
        ).fetchone()
        return int(dict(row)["total"]) if row else 0

    def mark_read(self, db, user_id: str, notification_id: int) -> bool:
        cursor = db.execute(
            "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?",
            (int(notification_id), user_id),
        )
        return int(cursor.rowcount or 0) == 1

    def mark_all_read(self, db, user_id: str) -> int:
        cursor = db.execute(
            "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0",
            (user_id,),
        )
        return int(cursor.rowcount or 0)
