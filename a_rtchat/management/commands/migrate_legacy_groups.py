# a_rtchat/management/commands/migrate_legacy_groups.py

from django.core.management.base import BaseCommand
from google.cloud import firestore as _fs

from a_core.documents import now_iso
from a_core.firebase_admin_client import get_db
from a_rtchat.firebase_sync import preview_text
from a_rtchat.models import CHATS_COLLECTION, GROUPS_COLLECTION, MESSAGES_COLLECTION, unique_ids


def _build_group_chat(data: dict, last_message=None) -> dict:
    """
    chats/{id} payload for a legacy groups/{id} record. Messages are not
    copied: group chats read them from groups/{id}/messages already.
    """
    participants = unique_ids(data.get("participants") or [])
    created_by = data.get("createdBy") or (participants[0] if participants else "")
    admins = [a for a in unique_ids(data.get("admins") or []) if a in participants]
    if not admins and participants:
        admins = [created_by if created_by in participants else participants[0]]

    created_at = data.get("createdAt") or now_iso()
    payload = {
        "type": "group",
        "name": data.get("name") or "",
        "participants": participants,
        "admins": admins,
        "createdBy": created_by,
        "createdAt": created_at,
        "lastMessageTime": created_at,
        "isArchived": bool(data.get("isArchived", False)),
        "pinnedBy": [],
    }
    if data.get("participantDetails"):
        payload["participantDetails"] = data["participantDetails"]

    if last_message is not None:
        msg = last_message.to_dict() or {}
        payload.update({
            "lastMessage": preview_text(msg.get("text") or ""),
            "lastMessageId": last_message.id,
            "lastMessageSenderId": msg.get("senderId"),
            "lastMessageTime": msg.get("sentAt") or created_at,
        })
    return payload


class Command(BaseCommand):
    help = (
        "Copy legacy groups/{id} records into chats/{id} as group chats. "
        "Idempotent: groups that already have a chat record are skipped."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--batch-size",
            type=int,
            default=400,
            help="Number of writes per commit (default: 400; Firestore limit is 500).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Print what would change, but do not write.",
        )

    def handle(self, *args, **opts):
        batch_size = max(1, opts["batch_size"])
        dry = opts["dry_run"]
        db = get_db()

        groups = list(db.collection(GROUPS_COLLECTION).stream())
        self.stdout.write(self.style.NOTICE(f"Found {len(groups)} legacy group(s)."))

        batch = db.batch()
        pending = 0
        migrated = 0

        for group in groups:
            chat_ref = db.collection(CHATS_COLLECTION).document(group.id)
            if chat_ref.get().exists:
                self.stdout.write(f"- Skip {group.id}: chat record already exists")
                continue

            latest = list(
                group.reference.collection(MESSAGES_COLLECTION)
                .order_by("sentAt", direction=_fs.Query.DESCENDING)
                .limit(1)
                .stream()
            )
            payload = _build_group_chat(group.to_dict() or {}, latest[0] if latest else None)
            migrated += 1
            self.stdout.write(
                f"- Will migrate {group.id} ({payload['name'] or 'unnamed'}, "
                f"{len(payload['participants'])} participant(s))"
            )

            if dry:
                continue

            batch.set(chat_ref, payload)
            pending += 1

            if pending >= batch_size:
                batch.commit()
                self.stdout.write(self.style.SUCCESS(f"Committed {pending} writes"))
                batch = db.batch()
                pending = 0

        if not dry and pending:
            batch.commit()
            self.stdout.write(self.style.SUCCESS(f"Committed {pending} writes"))

        msg = f"Done. {'(dry-run) ' if dry else ''}{migrated} group(s) {'would be' if dry else 'were'} migrated."
        self.stdout.write(self.style.SUCCESS(msg))
