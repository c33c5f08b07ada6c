"""Database operations for access links.

Tables: access_links, cases, hearings, case_comments, hearing_comments and
their *_documents attachment tables. Cases and hearings are only read here.

Status changes are always conditional on the current status
(`WHERE status = 'active'`), so concurrent writers cannot move a link out of
a terminal state or mark it used twice.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, PostgresTransaction
from core.models import (
    AccessLink,
    AccessLinkStatus,
    CaseRecord,
    CaseTarget,
    Comment,
    CommentAttachment,
    HearingRecord,
    HearingTarget,
)

_LINK_COLUMNS = """id, case_id, hearing_id, title, description, status, secret_hash,
                   expires_at, created_by, contact_email, contact_phone,
                   created_at, updated_at, used_at"""


class LinkTransaction:
    """Link statements that must commit together."""

    def __init__(self, tx: PostgresTransaction):
        self._tx = tx

    def lock_link(self, link_id: UUID) -> AccessLink | None:
        """Read a link and hold its row lock until commit."""
        row = self._tx.execute_single(
            f"SELECT {_LINK_COLUMNS} FROM access_links WHERE id = %s FOR UPDATE",
            (link_id,),
        )
        return AccessLink.model_validate(row) if row else None

    def mark_expired(self, link_id: UUID, now: datetime) -> bool:
        """ACTIVE -> EXPIRED. False if the link was no longer active."""
        rows = self._tx.execute(
            """UPDATE access_links SET status = 'expired', updated_at = %s
               WHERE id = %s AND status = 'active'
               RETURNING id""",
            (now, link_id),
        )
        return len(rows) > 0

    def mark_used_if_active(self, link_id: UUID, now: datetime) -> bool:
        """ACTIVE -> USED. False if another submission got there first."""
        rows = self._tx.execute(
            """UPDATE access_links SET status = 'used', used_at = %s, updated_at = %s
               WHERE id = %s AND status = 'active'
               RETURNING id""",
            (now, now, link_id),
        )
        return len(rows) > 0

    def insert_comment(
        self,
        target: CaseTarget | HearingTarget,
        text: str,
        attachments: list[CommentAttachment],
        client_name: str | None,
        client_email: str | None,
        link_id: UUID,
        now: datetime,
    ) -> Comment:
        """Write the client's comment on the case or on the hearing."""
        comment_id = uuid4()

        if isinstance(target, HearingTarget):
            self._tx.execute(
                """INSERT INTO hearing_comments
                   (id, hearing_id, text, client_name, client_email, access_link_id, created_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)""",
                (comment_id, target.hearing_id, text, client_name, client_email, link_id, now),
            )
            documents_table = "hearing_comment_documents"
        else:
            self._tx.execute(
                """INSERT INTO case_comments
                   (id, case_id, text, client_name, client_email, access_link_id, created_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)""",
                (comment_id, target.case_id, text, client_name, client_email, link_id, now),
            )
            documents_table = "case_comment_documents"

        for attachment in attachments:
            self._tx.execute(
                f"""INSERT INTO {documents_table}
                    (id, comment_id, file_name, file_path, file_type, file_size, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)""",
                (
                    uuid4(), comment_id,
                    attachment.file_name, attachment.file_path,
                    attachment.file_type, attachment.file_size,
                    now,
                ),
            )

        return Comment(
            id=comment_id,
            case_id=target.case_id if isinstance(target, CaseTarget) else None,
            hearing_id=target.hearing_id if isinstance(target, HearingTarget) else None,
            text=text,
            client_name=client_name,
            client_email=client_email,
            access_link_id=link_id,
            created_at=now,
            attachments=attachments,
        )


class LinkDatabase:
    """Database operations for access links."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    @contextmanager
    def transaction(self) -> Iterator[LinkTransaction]:
        with self._db.transaction() as tx:
            yield LinkTransaction(tx)

    def get_case(self, case_id: UUID) -> CaseRecord | None:
        """Case with its client's contact details."""
        row = self._db.execute_single(
            """SELECT c.id, c.advocate_id, c.case_number, c.title,
                      cl.name AS client_name, cl.email AS client_email, cl.phone AS client_phone
               FROM cases c
               LEFT JOIN clients cl ON cl.id = c.client_id
               WHERE c.id = %s""",
            (case_id,),
        )
        return CaseRecord.model_validate(row) if row else None

    def get_hearing(self, hearing_id: UUID) -> HearingRecord | None:
        row = self._db.execute_single(
            "SELECT id, case_id, hearing_date FROM hearings WHERE id = %s",
            (hearing_id,),
        )
        return HearingRecord.model_validate(row) if row else None

    def insert_link(
        self,
        target: CaseTarget | HearingTarget,
        title: str,
        description: str | None,
        secret_hash: str,
        expires_at: datetime,
        created_by: UUID,
        contact_email: str,
        contact_phone: str | None,
        now: datetime,
    ) -> AccessLink:
        """Store a new ACTIVE link."""
        hearing_id = target.hearing_id if isinstance(target, HearingTarget) else None
        rows = self._db.execute_returning(
            f"""INSERT INTO access_links
                (id, case_id, hearing_id, title, description, status, secret_hash,
                 expires_at, created_by, contact_email, contact_phone, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_LINK_COLUMNS}""",
            (
                uuid4(), target.case_id, hearing_id, title, description,
                AccessLinkStatus.ACTIVE.value, secret_hash,
                expires_at, created_by, contact_email, contact_phone, now, now,
            ),
        )
        return AccessLink.model_validate(rows[0])

    def get_link(self, link_id: UUID) -> AccessLink | None:
        row = self._db.execute_single(
            f"SELECT {_LINK_COLUMNS} FROM access_links WHERE id = %s",
            (link_id,),
        )
        return AccessLink.model_validate(row) if row else None

    def mark_expired(self, link_id: UUID, now: datetime) -> bool:
        """ACTIVE -> EXPIRED outside a larger transaction."""
        rows = self._db.execute_returning(
            """UPDATE access_links SET status = 'expired', updated_at = %s
               WHERE id = %s AND status = 'active'
               RETURNING id""",
            (now, link_id),
        )
        return len(rows) > 0

    def expire_overdue(self, now: datetime) -> list[UUID]:
        """Expire every ACTIVE link whose deadline has passed. Returns their ids."""
        rows = self._db.execute_returning(
            """UPDATE access_links SET status = 'expired', updated_at = %s
               WHERE status = 'active' AND expires_at < %s
               RETURNING id""",
            (now, now),
        )
        return [UUID(str(row["id"])) for row in rows]

    def list_links(
        self,
        created_by: UUID | None = None,
        status: AccessLinkStatus | None = None,
        case_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AccessLink], int]:
        """Page of links, newest first, plus the total matching count."""
        conditions = []
        params: list = []

        if created_by is not None:
            conditions.append("created_by = %s")
            params.append(created_by)
        if status is not None:
            conditions.append("status = %s")
            params.append(status.value)
        if case_id is not None:
            conditions.append("case_id = %s")
            params.append(case_id)

        where_clause = " AND ".join(conditions) if conditions else "TRUE"

        total = self._db.execute_scalar(
            f"SELECT COUNT(*) FROM access_links WHERE {where_clause}",
            tuple(params),
        )
        rows = self._db.execute(
            f"""SELECT {_LINK_COLUMNS} FROM access_links
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s""",
            tuple(params + [limit, offset]),
        )
        return [AccessLink.model_validate(row) for row in rows], int(total or 0)

    def purge_terminal(self, older_than: datetime) -> int:
        """Delete USED or EXPIRED links untouched since older_than."""
        rows = self._db.execute_returning(
            """DELETE FROM access_links
               WHERE status IN ('used', 'expired') AND updated_at < %s
               RETURNING id""",
            (older_than,),
        )
        return len(rows)
