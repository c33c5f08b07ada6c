"""Tests for LinkDatabase against PostgreSQL."""

from datetime import timedelta
from uuid import UUID

import pytest
from psycopg2 import errors as pg_errors

from core.link_database import LinkDatabase
from core.models import AccessLinkStatus, CaseTarget, CommentAttachment, HearingTarget
from utils.timezone import now_utc


@pytest.fixture
def link_db(clean_db):
    """LinkDatabase instance."""
    return LinkDatabase(clean_db)


@pytest.fixture
def advocate_id(clean_db) -> UUID:
    row = clean_db.execute_returning(
        "INSERT INTO admins (name, email) VALUES (%s, %s) RETURNING id",
        ("Adv. Meera Nair", "meera@example.com"),
    )[0]
    return UUID(str(row["id"]))


@pytest.fixture
def case_id(clean_db, advocate_id) -> UUID:
    client = clean_db.execute_returning(
        "INSERT INTO clients (advocate_id, name, email, phone) VALUES (%s, %s, %s, %s) RETURNING id",
        (advocate_id, "Ravi Kumar", "ravi@example.com", "+91 98450 00000"),
    )[0]
    row = clean_db.execute_returning(
        "INSERT INTO cases (advocate_id, client_id, case_number, title) VALUES (%s, %s, %s, %s) RETURNING id",
        (advocate_id, client["id"], "WP(C) 101/2025", "Kumar v. State"),
    )[0]
    return UUID(str(row["id"]))


@pytest.fixture
def hearing_id(clean_db, case_id) -> UUID:
    row = clean_db.execute_returning(
        "INSERT INTO hearings (case_id, hearing_date) VALUES (%s, CURRENT_DATE) RETURNING id",
        (case_id,),
    )[0]
    return UUID(str(row["id"]))


def _insert(link_db, case_id, advocate_id, expires_in=timedelta(hours=48), target=None, now=None):
    now = now or now_utc()
    return link_db.insert_link(
        target=target or CaseTarget(case_id=case_id),
        title="Upload signed vakalatnama",
        description=None,
        secret_hash="$2b$10$notarealhashnotarealhashnotarealhashnotarealhashnot",
        expires_at=now + expires_in,
        created_by=advocate_id,
        contact_email="ravi@example.com",
        contact_phone=None,
        now=now,
    )


class TestReads:

    def test_case_carries_client_contact(self, link_db, case_id, advocate_id):
        case = link_db.get_case(case_id)

        assert case.advocate_id == advocate_id
        assert case.client_email == "ravi@example.com"
        assert case.client_phone == "+91 98450 00000"

    def test_missing_case_is_none(self, link_db):
        assert link_db.get_case(UUID(int=7)) is None

    def test_inserted_link_is_active(self, link_db, case_id, advocate_id):
        link = _insert(link_db, case_id, advocate_id)

        stored = link_db.get_link(link.id)
        assert stored.status is AccessLinkStatus.ACTIVE
        assert stored.used_at is None
        assert stored.case_id == case_id

    def test_hearing_target_round_trips(self, link_db, case_id, hearing_id, advocate_id):
        link = _insert(link_db, case_id, advocate_id, target=HearingTarget(case_id=case_id, hearing_id=hearing_id))
        assert link_db.get_link(link.id).hearing_id == hearing_id


class TestStatusTransitions:

    def test_second_mark_used_loses(self, link_db, case_id, advocate_id):
        link = _insert(link_db, case_id, advocate_id)
        now = now_utc()

        with link_db.transaction() as tx:
            assert tx.mark_used_if_active(link.id, now) is True
        with link_db.transaction() as tx:
            assert tx.mark_used_if_active(link.id, now) is False

        stored = link_db.get_link(link.id)
        assert stored.status is AccessLinkStatus.USED
        assert stored.used_at is not None

    def test_used_link_cannot_expire(self, link_db, case_id, advocate_id):
        link = _insert(link_db, case_id, advocate_id)
        with link_db.transaction() as tx:
            tx.mark_used_if_active(link.id, now_utc())

        assert link_db.mark_expired(link.id, now_utc()) is False
        assert link_db.get_link(link.id).status is AccessLinkStatus.USED

    def test_expired_link_cannot_be_used(self, link_db, case_id, advocate_id):
        link = _insert(link_db, case_id, advocate_id)
        assert link_db.mark_expired(link.id, now_utc()) is True

        with link_db.transaction() as tx:
            assert tx.mark_used_if_active(link.id, now_utc()) is False
        assert link_db.get_link(link.id).status is AccessLinkStatus.EXPIRED

    def test_used_status_requires_used_at(self, clean_db, link_db, case_id, advocate_id):
        link = _insert(link_db, case_id, advocate_id)

        with pytest.raises(pg_errors.CheckViolation):
            clean_db.execute("UPDATE access_links SET status = 'used' WHERE id = %s", (link.id,))

    def test_rolled_back_transaction_leaves_link_active(self, link_db, case_id, advocate_id):
        link = _insert(link_db, case_id, advocate_id)

        with pytest.raises(RuntimeError):
            with link_db.transaction() as tx:
                tx.mark_used_if_active(link.id, now_utc())
                raise RuntimeError("comment insert failed")

        assert link_db.get_link(link.id).status is AccessLinkStatus.ACTIVE

    def test_lock_link_holds_row_lock(self, clean_db, link_db, case_id, advocate_id):
        link = _insert(link_db, case_id, advocate_id)

        with link_db.transaction() as tx:
            assert tx.lock_link(link.id).id == link.id
            with pytest.raises(pg_errors.LockNotAvailable):
                clean_db.execute("SELECT id FROM access_links WHERE id = %s FOR UPDATE NOWAIT", (link.id,))


class TestExpirySweep:

    def test_only_overdue_active_links_expire(self, link_db, case_id, advocate_id):
        now = now_utc()
        overdue = _insert(link_db, case_id, advocate_id, expires_in=timedelta(hours=1), now=now - timedelta(hours=2))
        current = _insert(link_db, case_id, advocate_id)
        used = _insert(link_db, case_id, advocate_id, expires_in=timedelta(hours=1), now=now - timedelta(hours=2))
        with link_db.transaction() as tx:
            tx.mark_used_if_active(used.id, now - timedelta(hours=2))

        assert link_db.expire_overdue(now) == [overdue.id]

        assert link_db.get_link(overdue.id).status is AccessLinkStatus.EXPIRED
        assert link_db.get_link(current.id).status is AccessLinkStatus.ACTIVE
        assert link_db.get_link(used.id).status is AccessLinkStatus.USED
        assert link_db.expire_overdue(now) == []

    def test_purge_removes_only_old_terminal_links(self, link_db, case_id, advocate_id):
        now = now_utc()
        old = _insert(link_db, case_id, advocate_id, now=now - timedelta(days=40))
        link_db.mark_expired(old.id, now - timedelta(days=40))
        recent = _insert(link_db, case_id, advocate_id)
        link_db.mark_expired(recent.id, now)
        active = _insert(link_db, case_id, advocate_id, now=now - timedelta(days=40), expires_in=timedelta(days=60))

        assert link_db.purge_terminal(now - timedelta(days=30)) == 1

        assert link_db.get_link(old.id) is None
        assert link_db.get_link(recent.id) is not None
        assert link_db.get_link(active.id) is not None


class TestComments:

    def test_case_comment_with_attachments(self, clean_db, link_db, case_id, advocate_id):
        link = _insert(link_db, case_id, advocate_id)
        attachment = CommentAttachment(file_name="vakalat.pdf", file_path="uploads/vakalat.pdf", file_size=2048)

        with link_db.transaction() as tx:
            comment = tx.insert_comment(
                CaseTarget(case_id=case_id), "Signed copy attached", [attachment],
                "Ravi Kumar", "ravi@example.com", link.id, now_utc(),
            )

        stored = clean_db.execute_single("SELECT * FROM case_comments WHERE id = %s", (comment.id,))
        assert stored["text"] == "Signed copy attached"
        documents = clean_db.execute(
            "SELECT file_name FROM case_comment_documents WHERE comment_id = %s", (comment.id,)
        )
        assert [d["file_name"] for d in documents] == ["vakalat.pdf"]

    def test_hearing_comment_goes_to_hearing_table(self, clean_db, link_db, case_id, hearing_id, advocate_id):
        target = HearingTarget(case_id=case_id, hearing_id=hearing_id)
        link = _insert(link_db, case_id, advocate_id, target=target)

        with link_db.transaction() as tx:
            comment = tx.insert_comment(target, "Will attend", [], None, None, link.id, now_utc())

        assert clean_db.execute_single("SELECT id FROM hearing_comments WHERE id = %s", (comment.id,))
        assert clean_db.execute_scalar("SELECT COUNT(*) FROM case_comments") == 0


class TestListLinks:

    def test_filters_and_total(self, clean_db, link_db, case_id, advocate_id):
        other = clean_db.execute_returning(
            "INSERT INTO admins (name, email) VALUES (%s, %s) RETURNING id",
            ("Adv. Arjun Rao", "arjun@example.com"),
        )[0]["id"]
        mine = [_insert(link_db, case_id, advocate_id) for _ in range(3)]
        _insert(link_db, case_id, UUID(str(other)))
        link_db.mark_expired(mine[0].id, now_utc())

        page, total = link_db.list_links(created_by=advocate_id, limit=2)
        assert total == 3
        assert len(page) == 2

        expired, total = link_db.list_links(created_by=advocate_id, status=AccessLinkStatus.EXPIRED)
        assert total == 1
        assert expired[0].id == mine[0].id

        _, total = link_db.list_links()
        assert total == 4
