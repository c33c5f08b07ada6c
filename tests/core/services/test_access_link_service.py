"""Tests for AccessLinkService: create, verify, consume and expiry."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from uuid import uuid4

import pytest

from auth.config import AccessLinkConfig
from auth.exceptions import RateLimitedError
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityEvent
from core.errors import (
    ForbiddenError,
    InvalidCapabilityError,
    InvalidInputError,
    InvalidSecretError,
    LinkExpiredError,
    LinkInactiveError,
    NotFoundError,
)
from core.models import (
    AccessLinkCreate,
    AccessLinkStatus,
    CommentAttachment,
    HearingTarget,
    LinkSubmission,
)
from core.services.access_link_service import AccessLinkService

from tests.fakes import LINK_SECRET as SECRET, FakeLinkTransaction


@pytest.fixture
def service(link_db, audit, security_logger, notifier, capabilities, link_config, clock, valkey):
    return AccessLinkService(
        link_db,
        audit,
        security_logger,
        notifier,
        capabilities,
        link_config,
        clock=clock,
        rate_limiter=RateLimiter(valkey, link_config),
        secret_generator=lambda length: SECRET,
    )

@pytest.fixture
def case(link_db, advocate):
    return link_db.add_case(advocate.id)

def _create(service, case, actor, **overrides):
    data = {"case_id": case.id, "title": "Upload signed vakalatnama", "expires_in_hours": 48}
    data.update(overrides)
    return service.create(AccessLinkCreate(**data), actor)

def _logged_events(security_logger):
    return [c.args[0] for c in security_logger.log.call_args_list]

# =============================================================================
# CREATE
# =============================================================================

class TestCreate:

    def test_owner_creates_active_link(self, service, case, advocate, clock, link_db):
        created = _create(service, case, advocate)

        link = created.link
        assert link.status is AccessLinkStatus.ACTIVE
        assert link.expires_at == clock.now() + timedelta(hours=48)
        assert link.contact_email == "ravi@example.com"
        assert link.created_by == advocate.id
        assert created.secret == SECRET
        assert link_db.get_link(link.id) is not None

    def test_secret_is_only_stored_hashed(self, service, case, advocate):
        created = _create(service, case, advocate)

        assert SECRET not in created.link.secret_hash
        assert "secret_hash" not in created.link.model_dump()
        assert SECRET not in repr(created)

    def test_invitation_sent_with_plaintext_secret(self, service, case, advocate, notifier):
        created = _create(service, case, advocate)

        args, kwargs = notifier.send_link_invitation.call_args
        assert args[2] == SECRET
        assert args[3] == f"https://desk.example.com/links/{created.link.id}"
        assert kwargs["creator_email"] == advocate.email

    def test_failed_invitation_does_not_undo_the_link(self, service, case, advocate, notifier, link_db):
        notifier.send_link_invitation.return_value = False

        created = _create(service, case, advocate)

        assert link_db.get_link(created.link.id).status is AccessLinkStatus.ACTIVE

    def test_raising_notifier_does_not_undo_the_link(self, service, case, advocate, notifier, link_db):
        notifier.send_link_invitation.side_effect = RuntimeError("template error")

        created = _create(service, case, advocate)

        assert link_db.get_link(created.link.id).status is AccessLinkStatus.ACTIVE

    def test_invitation_is_sent_after_create_returns(
        self, link_db, audit, security_logger, notifier, capabilities, link_config, clock, case, advocate
    ):
        release = threading.Event()
        sent = threading.Event()

        def slow_send(*args, **kwargs):
            release.wait(5)
            sent.set()
            return True

        notifier.send_link_invitation.side_effect = slow_send

        with ThreadPoolExecutor(max_workers=1) as executor:
            service = AccessLinkService(
                link_db, audit, security_logger, notifier, capabilities, link_config,
                clock=clock, secret_generator=lambda length: SECRET, executor=executor,
            )
            created = _create(service, case, advocate)

            assert created.secret == SECRET
            assert not sent.is_set()
            release.set()

        assert sent.is_set()
        assert notifier.send_link_invitation.call_args.args[2] == SECRET

    def test_super_admin_may_create_on_any_case(self, service, case, super_admin):
        assert _create(service, case, super_admin).link.created_by == super_admin.id

    def test_other_advocate_forbidden(self, service, case, other_advocate, link_db):
        with pytest.raises(ForbiddenError):
            _create(service, case, other_advocate)
        assert link_db.links == {}

    def test_unknown_case_not_found(self, service, advocate, link_db):
        with pytest.raises(NotFoundError):
            service.create(
                AccessLinkCreate(case_id=uuid4(), title="Docs", expires_in_hours=1), advocate
            )

    def test_hearing_target(self, service, case, advocate, link_db):
        hearing = link_db.add_hearing(case.id)

        link = _create(service, case, advocate, hearing_id=hearing.id).link

        assert isinstance(link.target, HearingTarget)
        assert link.hearing_id == hearing.id

    def test_hearing_of_another_case_not_found(self, service, case, advocate, link_db):
        other_case = link_db.add_case(advocate.id, case_number="CRL 9/2025")
        hearing = link_db.add_hearing(other_case.id)

        with pytest.raises(NotFoundError, match="Hearing"):
            _create(service, case, advocate, hearing_id=hearing.id)

    def test_expiry_over_maximum_rejected(self, service, case, advocate):
        with pytest.raises(InvalidInputError, match="expires_in_hours"):
            _create(service, case, advocate, expires_in_hours=24 * 31)

    def test_case_without_email_needs_contact_email(self, service, link_db, advocate):
        case = link_db.add_case(advocate.id, client_email=None)

        with pytest.raises(InvalidInputError, match="contact_email"):
            _create(service, case, advocate)

        created = _create(service, case, advocate, contact_email="son@example.com")
        assert created.link.contact_email == "son@example.com"

    def test_blank_title_rejected_by_model(self, case):
        with pytest.raises(ValueError):
            AccessLinkCreate(case_id=case.id, title="   ", expires_in_hours=1)

class TestListLinks:

    def test_advocate_sees_only_own_links(self, service, case, advocate, super_admin):
        _create(service, case, advocate)
        _create(service, case, super_admin)

        mine, total = service.list_links(advocate)
        assert total == 1
        assert mine[0].created_by == advocate.id

        everything, total = service.list_links(super_admin)
        assert total == 2

# =============================================================================
# VERIFY AND CONSUME
# =============================================================================

class TestLinkScenario:
    """Create, verify with the right and wrong code, submit, then reuse."""

    def test_full_lifecycle(self, service, case, advocate, link_db, security_logger, clock):
        link = _create(service, case, advocate).link

        with pytest.raises(InvalidSecretError):
            service.verify(link.id, "000000")
        assert link_db.get_link(link.id).status is AccessLinkStatus.ACTIVE

        grant = service.verify(link.id, SECRET)
        assert grant.link_id == link.id

        clock.advance(minutes=5)
        receipt = service.consume(grant.token, LinkSubmission(text="Signed copy attached"), link_id=link.id)

        stored = link_db.get_link(link.id)
        assert stored.status is AccessLinkStatus.USED
        assert stored.used_at == clock.now()
        assert receipt.comment.text == "Signed copy attached"
        assert receipt.comment.case_id == case.id
        assert receipt.comment.access_link_id == link.id
        assert receipt.comment.client_name == "Ravi Kumar"

        with pytest.raises(LinkInactiveError):
            service.verify(link.id, SECRET)
        with pytest.raises(LinkInactiveError):
            service.consume(grant.token, LinkSubmission(text="again"), link_id=link.id)
        assert len(link_db.comments) == 1

        events = _logged_events(security_logger)
        assert SecurityEvent.LINK_VERIFY_FAILED in events
        assert SecurityEvent.LINK_VERIFIED in events
        assert SecurityEvent.LINK_CONSUMED in events

    def test_verifying_twice_issues_independent_tokens(self, service, case, advocate):
        link = _create(service, case, advocate).link

        assert service.verify(link.id, SECRET).token != service.verify(link.id, SECRET).token

    def test_hearing_submission_lands_on_hearing(self, service, case, advocate, link_db):
        hearing = link_db.add_hearing(case.id)
        link = _create(service, case, advocate, hearing_id=hearing.id).link
        grant = service.verify(link.id, SECRET)

        receipt = service.consume(grant.token, LinkSubmission(
            attachments=[CommentAttachment(file_name="order.pdf", file_path="uploads/order.pdf")]
        ))

        assert receipt.comment.hearing_id == hearing.id
        assert receipt.comment.case_id is None
        assert receipt.comment.text == ""
        assert receipt.comment.attachments[0].file_name == "order.pdf"

    def test_unknown_link_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.verify(uuid4(), SECRET)

    def test_empty_submission_rejected_and_link_stays_active(self, service, case, advocate, link_db):
        link = _create(service, case, advocate).link
        grant = service.verify(link.id, SECRET)

        with pytest.raises(InvalidInputError):
            service.consume(grant.token, LinkSubmission(text="   "))
        assert link_db.get_link(link.id).status is AccessLinkStatus.ACTIVE

    def test_token_for_another_link_rejected(self, service, case, advocate, link_db):
        first = _create(service, case, advocate).link
        second = _create(service, case, advocate).link
        grant = service.verify(first.id, SECRET)

        with pytest.raises(InvalidCapabilityError):
            service.consume(grant.token, LinkSubmission(text="hi"), link_id=second.id)
        assert link_db.get_link(second.id).status is AccessLinkStatus.ACTIVE

    def test_forged_token_rejected_and_logged(self, service, security_logger):
        with pytest.raises(InvalidCapabilityError):
            service.consume("forged", LinkSubmission(text="hi"))
        assert SecurityEvent.LINK_TOKEN_REJECTED in _logged_events(security_logger)

    def test_failed_comment_insert_leaves_link_active(self, service, case, advocate, link_db, monkeypatch):
        link = _create(service, case, advocate).link
        grant = service.verify(link.id, SECRET)

        def broken_insert(self, *args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(FakeLinkTransaction, "insert_comment", broken_insert)

        with pytest.raises(RuntimeError):
            service.consume(grant.token, LinkSubmission(text="hi"))
        assert link_db.get_link(link.id).status is AccessLinkStatus.ACTIVE

class TestAttemptLimit:

    def test_locks_after_repeated_wrong_codes(self, link_db, audit, security_logger, notifier,
                                              capabilities, clock, valkey, case, advocate):
        config = AccessLinkConfig(bcrypt_rounds=10, verify_attempts=3)
        service = AccessLinkService(
            link_db, audit, security_logger, notifier, capabilities, config,
            clock=clock, rate_limiter=RateLimiter(valkey, config), secret_generator=lambda n: SECRET,
        )
        link = _create(service, case, advocate).link

        remaining = []
        for _ in range(3):
            with pytest.raises(InvalidSecretError) as excinfo:
                service.verify(link.id, "111111")
            remaining.append(excinfo.value.remaining_attempts)
        assert remaining == [2, 1, 0]

        with pytest.raises(RateLimitedError):
            service.verify(link.id, SECRET)
        assert SecurityEvent.RATE_LIMITED in _logged_events(security_logger)

    def test_works_without_a_limiter(self, link_db, audit, security_logger, notifier,
                                      capabilities, link_config, clock, case, advocate):
        service = AccessLinkService(
            link_db, audit, security_logger, notifier, capabilities, link_config,
            clock=clock, secret_generator=lambda n: SECRET,
        )
        link = _create(service, case, advocate).link

        assert service.verify(link.id, SECRET).link_id == link.id

        with pytest.raises(InvalidSecretError) as excinfo:
            service.verify(link.id, "111111")
        assert excinfo.value.remaining_attempts is None

# =============================================================================
# EXPIRY
# =============================================================================

class TestExpiry:

    def test_verify_after_deadline_expires_the_link(self, service, case, advocate, link_db, clock):
        link = _create(service, case, advocate, expires_in_hours=1).link
        clock.advance(hours=1, seconds=1)

        with pytest.raises(LinkExpiredError):
            service.verify(link.id, SECRET)
        assert link_db.get_link(link.id).status is AccessLinkStatus.EXPIRED

    def test_link_is_usable_exactly_at_deadline(self, service, case, advocate, clock):
        link = _create(service, case, advocate, expires_in_hours=1).link
        clock.advance(hours=1)

        assert service.verify(link.id, SECRET).link_id == link.id

    def test_describe_applies_lazy_expiry(self, service, case, advocate, clock):
        link = _create(service, case, advocate, expires_in_hours=1).link
        assert service.describe(link.id).status is AccessLinkStatus.ACTIVE

        clock.advance(hours=2)

        view = service.describe(link.id)
        assert view.status is AccessLinkStatus.EXPIRED
        assert view.case_number == case.case_number

    def test_check_and_expire_is_idempotent(self, service, case, advocate, clock, audit):
        link = _create(service, case, advocate, expires_in_hours=1).link
        clock.advance(hours=2)

        first = service.check_and_expire(link)
        audit.reset_mock()
        second = service.check_and_expire(link)

        assert first.status is AccessLinkStatus.EXPIRED
        assert second.status is AccessLinkStatus.EXPIRED
        audit.log_change.assert_not_called()

    def test_check_and_expire_leaves_used_links_alone(self, service, case, advocate, clock, link_db):
        link = _create(service, case, advocate, expires_in_hours=1).link
        service.consume(service.verify(link.id, SECRET).token, LinkSubmission(text="done"))
        clock.advance(hours=2)

        assert service.check_and_expire(link_db.get_link(link.id)).status is AccessLinkStatus.USED

    def test_token_held_past_deadline_cannot_submit(self, service, case, advocate, link_db, clock):
        link = _create(service, case, advocate, expires_in_hours=1).link
        grant = service.verify(link.id, SECRET)
        clock.advance(hours=2)

        with pytest.raises(InvalidCapabilityError):
            service.consume(grant.token, LinkSubmission(text="late"))
        assert link_db.comments == {}

    def test_sweep_expires_only_overdue_active_links(self, service, case, advocate, link_db, clock):
        short = _create(service, case, advocate, expires_in_hours=1).link
        long = _create(service, case, advocate, expires_in_hours=72).link
        clock.advance(hours=3)

        assert service.expire_overdue_links() == 1
        assert link_db.get_link(short.id).status is AccessLinkStatus.EXPIRED
        assert link_db.get_link(long.id).status is AccessLinkStatus.ACTIVE
        assert service.expire_overdue_links() == 0

    def test_purge_removes_terminal_links_after_grace(self, service, case, advocate, link_db, clock):
        expired = _create(service, case, advocate, expires_in_hours=1).link
        active = _create(service, case, advocate, expires_in_hours=720).link
        clock.advance(hours=2)
        service.expire_overdue_links()

        assert service.purge_terminal_links() == 0

        clock.advance(days=2)
        assert service.purge_terminal_links() == 1
        assert link_db.get_link(expired.id) is None
        assert link_db.get_link(active.id) is not None

# =============================================================================
# CONCURRENCY
# =============================================================================

class TestConcurrentConsume:

    def test_exactly_one_of_many_submissions_wins(self, service, case, advocate, link_db):
        link = _create(service, case, advocate).link
        tokens = [service.verify(link.id, SECRET).token for _ in range(8)]
        barrier = threading.Barrier(len(tokens))
        results = []
        lock = threading.Lock()

        def submit(token, n):
            barrier.wait()
            try:
                service.consume(token, LinkSubmission(text=f"submission {n}"))
                outcome = "ok"
            except LinkInactiveError:
                outcome = "inactive"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=submit, args=(t, n)) for n, t in enumerate(tokens)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("ok") == 1
        assert results.count("inactive") == len(tokens) - 1
        assert len(link_db.comments) == 1
        assert link_db.get_link(link.id).status is AccessLinkStatus.USED
