"""
Notification Service.

Fan-out helpers used by every mutating workflow, plus the inbox queries
behind ``/api/notifications``.

Transaction policy: ``notify_*`` add rows to the caller's session without
committing; the route handler commits together with the business change.
Inbox actions (mark read) commit themselves.
"""

from datetime import datetime, timezone

from servicedesk.models import db
from servicedesk.models.notification import Notification
from servicedesk.models.team import ROLE_ADMIN, TeamMember
from servicedesk.services import realtime


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Fan-out ───────────────────────────────────────────────────────────

    @staticmethod
    def _fan_out(members, *, title, message, event_type, exclude_user_id=None):
        created = []
        for member in members:
            if exclude_user_id is not None and member.id == exclude_user_id:
                continue
            notif = Notification(
                user_id=member.id,
                title=title,
                message=message,
                type=event_type,
            )
            db.session.add(notif)
            created.append(notif)
        realtime.notify_frame(title, message, event_type)
        return created

    @staticmethod
    def notify_users(*, title, message="", event_type="system", exclude_user_id=None):
        """One inbox row per team member except the actor, then a NOTIFICATION frame."""
        members = TeamMember.query.order_by(TeamMember.id).all()
        return NotificationService._fan_out(
            members, title=title, message=message,
            event_type=event_type, exclude_user_id=exclude_user_id,
        )

    @staticmethod
    def notify_admins(*, title, message="", event_type="system", exclude_user_id=None):
        """Same as ``notify_users`` but only Admin members receive inbox rows."""
        admins = TeamMember.query.filter_by(role=ROLE_ADMIN).order_by(TeamMember.id).all()
        return NotificationService._fan_out(
            admins, title=title, message=message,
            event_type=event_type, exclude_user_id=exclude_user_id,
        )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_member(member_id, unread_only=False, limit=50, offset=0):
        """Retrieve a member's notifications, newest first."""
        q = Notification.query.filter_by(user_id=member_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(member_id):
        return Notification.query.filter_by(user_id=member_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, member_id):
        """Mark one of the member's notifications as read. Returns None if not theirs."""
        notif = Notification.query.filter_by(id=notification_id, user_id=member_id).first()
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(member_id):
        q = Notification.query.filter_by(user_id=member_id, is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count
