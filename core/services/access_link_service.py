"""
Access link service.

A case owner creates a link for a case or one of its hearings. The client
receives a six digit secret by email, proves they hold it (verify) and gets a
capability token, then submits one comment through the link (consume), which
marks it USED.

Status only ever moves ACTIVE -> EXPIRED or ACTIVE -> USED. Expiry is applied
lazily by check_and_expire() whenever a link is touched after its deadline,
and in bulk by the scheduled sweep.
"""

import logging
from concurrent.futures import Executor
from datetime import timedelta
from typing import Callable
from uuid import UUID

from auth.capability import CapabilityIssuer
from auth.config import AccessLinkConfig
from auth.exceptions import RateLimitedError
from auth.link_secret import check_secret, hash_secret, random_digits
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityEvent, SecurityLogger
from core.audit import AuditAction, AuditLogger
from core.errors import (
    ForbiddenError,
    InvalidCapabilityError,
    InvalidInputError,
    InvalidSecretError,
    LinkExpiredError,
    LinkInactiveError,
    NotFoundError,
)
from core.link_database import LinkDatabase
from core.models import (
    AccessLink,
    AccessLinkCreate,
    AccessLinkStatus,
    Actor,
    CapabilityGrant,
    CaseRecord,
    CreatedAccessLink,
    LinkSubmission,
    PublicLinkView,
    SubmissionReceipt,
    target_for,
)
from core.notifications import Notifier
from utils.timezone import Clock

logger = logging.getLogger(__name__)


class AccessLinkService:
    """Create, verify, consume and expire access links."""

    def __init__(
        self,
        link_db: LinkDatabase,
        audit: AuditLogger,
        security_logger: SecurityLogger,
        notifier: Notifier,
        capabilities: CapabilityIssuer,
        config: AccessLinkConfig,
        clock: Clock | None = None,
        rate_limiter: RateLimiter | None = None,
        secret_generator: Callable[[int], str] = random_digits,
        executor: Executor | None = None,
    ):
        self.link_db = link_db
        self.audit = audit
        self.security_logger = security_logger
        self.notifier = notifier
        self.capabilities = capabilities
        self.config = config
        self.clock = clock or Clock()
        self.rate_limiter = rate_limiter
        self._generate_secret = secret_generator
        self._executor = executor

    # =========================================================================
    # OWNER OPERATIONS
    # =========================================================================

    def create(self, data: AccessLinkCreate, actor: Actor) -> CreatedAccessLink:
        """
        Create an ACTIVE link and email its secret to the client.

        The plaintext secret is returned alongside the stored link and is
        never persisted. A failed invitation email is logged; the link still
        exists and the owner can pass the returned secret on by hand.

        Raises:
            NotFoundError: Case or hearing does not exist, or the hearing
                belongs to a different case
            ForbiddenError: Actor neither owns the case nor is a super-admin
            InvalidInputError: Expiry too long, or no contact email available
        """
        case = self.link_db.get_case(data.case_id)
        if case is None:
            raise NotFoundError(f"Case {data.case_id} not found")

        if data.hearing_id is not None:
            hearing = self.link_db.get_hearing(data.hearing_id)
            if hearing is None or hearing.case_id != case.id:
                raise NotFoundError(f"Hearing {data.hearing_id} not found for case {case.case_number}")

        if not actor.can_access(case.advocate_id):
            raise ForbiddenError(f"You do not have access to case {case.case_number}")

        if data.expires_in_hours > self.config.max_expiry_hours:
            raise InvalidInputError(
                f"expires_in_hours must be at most {self.config.max_expiry_hours}"
            )

        contact_email = data.contact_email or case.client_email
        if not contact_email:
            raise InvalidInputError(
                f"Case {case.case_number} has no client email; provide contact_email"
            )

        secret = self._generate_secret(self.config.secret_digits)
        now = self.clock.now()

        link = self.link_db.insert_link(
            target=target_for(case.id, data.hearing_id),
            title=data.title,
            description=data.description,
            secret_hash=hash_secret(secret, self.config.bcrypt_rounds),
            expires_at=now + timedelta(hours=data.expires_in_hours),
            created_by=actor.id,
            contact_email=contact_email,
            contact_phone=data.contact_phone or case.client_phone,
            now=now,
        )

        self.audit.log_change(
            entity_type="access_link",
            entity_id=link.id,
            action=AuditAction.CREATE,
            changes={"created": link.model_dump(mode="json")},
            actor_id=actor.id,
        )
        self.security_logger.log(SecurityEvent.LINK_CREATED, link_id=link.id, actor_id=actor.id)

        invitation = (link, case, secret, data.expires_in_hours, actor.email)
        if self._executor is None:
            self._send_invitation(*invitation)
        else:
            self._executor.submit(self._send_invitation, *invitation)

        logger.info(f"Access link {link.id} created for case {case.case_number}")
        return CreatedAccessLink(link=link, secret=secret)

    def _send_invitation(
        self,
        link: AccessLink,
        case: CaseRecord,
        secret: str,
        expires_in_hours: int,
        creator_email: str | None,
    ) -> None:
        try:
            delivered = self.notifier.send_link_invitation(
                link,
                case,
                secret,
                self.config.link_url(link.id),
                expires_in_hours,
                creator_email=creator_email,
            )
        except Exception:
            logger.exception(f"Invitation for access link {link.id} failed")
            return
        if not delivered:
            logger.warning(f"Invitation for access link {link.id} was not delivered")

    def list_links(
        self,
        actor: Actor,
        status: AccessLinkStatus | None = None,
        case_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AccessLink], int]:
        """Links the actor created (all links for a super-admin), newest first."""
        return self.link_db.list_links(
            created_by=None if actor.is_super_admin else actor.id,
            status=status,
            case_id=case_id,
            limit=limit,
            offset=offset,
        )

    # =========================================================================
    # LINK HOLDER OPERATIONS
    # =========================================================================

    def describe(self, link_id: UUID) -> PublicLinkView:
        """What the client sees before entering the secret. Applies lazy expiry."""
        link = self.check_and_expire(self._get_link(link_id))
        case = self.link_db.get_case(link.case_id)

        return PublicLinkView(
            id=link.id,
            title=link.title,
            description=link.description,
            case_number=case.case_number if case else "",
            target_kind=link.target.kind,
            status=link.status,
            expires_at=link.expires_at,
        )

    def verify(
        self,
        link_id: UUID,
        presented_secret: str,
        client_ip: str | None = None,
    ) -> CapabilityGrant:
        """
        Exchange the link's secret for a capability token.

        Checks run in a fixed order and stop at the first failure: the link
        exists, it is ACTIVE, it is not past its deadline (which is recorded
        as EXPIRED), the attempt limit is not exceeded, and the secret
        matches. A wrong secret leaves the link untouched. Verifying again
        while the link is ACTIVE issues another independent token.

        Raises:
            NotFoundError, LinkInactiveError, LinkExpiredError,
            RateLimitedError, InvalidSecretError
        """
        link = self._get_link(link_id)
        self._require_active(link, client_ip)
        link = self.check_and_expire(link)
        self._require_active(link, client_ip)

        if self.rate_limiter is not None:
            try:
                self.rate_limiter.check_rate_limit(link.id)
            except RateLimitedError:
                self.security_logger.log(SecurityEvent.RATE_LIMITED, link_id=link.id, ip_address=client_ip)
                raise

        if not check_secret(presented_secret, link.secret_hash):
            self.security_logger.log(SecurityEvent.LINK_VERIFY_FAILED, link_id=link.id, ip_address=client_ip)
            remaining = self.rate_limiter.get_remaining_attempts(link.id) if self.rate_limiter else None
            raise InvalidSecretError(link.id, remaining_attempts=remaining)

        if self.rate_limiter is not None:
            self.rate_limiter.reset_rate_limit(link.id)

        grant = self.capabilities.issue(link)
        self.security_logger.log(SecurityEvent.LINK_VERIFIED, link_id=link.id, ip_address=client_ip)
        return grant

    def consume(
        self,
        token: str,
        submission: LinkSubmission,
        link_id: UUID | None = None,
        client_ip: str | None = None,
    ) -> SubmissionReceipt:
        """
        Record the client's submission and mark the link USED.

        The comment insert and the ACTIVE -> USED transition commit together.
        The transition is conditional on the stored status, so of two
        concurrent submissions on one link exactly one succeeds and the other
        gets LinkInactiveError.

        Raises:
            InvalidCapabilityError: Token invalid, expired or for another link
            InvalidInputError: Submission has neither text nor attachments
            NotFoundError, LinkInactiveError, LinkExpiredError
        """
        now = self.clock.now()
        try:
            granted_id = self.capabilities.verify(token, now, link_id=link_id)
        except InvalidCapabilityError:
            self.security_logger.log(SecurityEvent.LINK_TOKEN_REJECTED, link_id=link_id, ip_address=client_ip)
            raise

        if submission.is_empty:
            raise InvalidInputError("Submission must include comment text or at least one attachment")

        link = self._get_link(granted_id)
        self._require_active(link, client_ip)
        link = self.check_and_expire(link)
        self._require_active(link, client_ip)

        case = self.link_db.get_case(link.case_id)
        text = (submission.text or "").strip()
        expired_in_flight = False

        with self.link_db.transaction() as tx:
            locked = tx.lock_link(link.id)
            if locked is None:
                raise NotFoundError(f"Access link {link.id} not found")
            self._require_active(locked, client_ip)

            now = self.clock.now()
            if locked.is_past_expiry(now):
                tx.mark_expired(locked.id, now)
                expired_in_flight = True
            else:
                comment = tx.insert_comment(
                    target=locked.target,
                    text=text,
                    attachments=submission.attachments,
                    client_name=case.client_name if case else None,
                    client_email=locked.contact_email,
                    link_id=locked.id,
                    now=now,
                )
                if not tx.mark_used_if_active(locked.id, now):
                    raise LinkInactiveError(locked.id)

        if expired_in_flight:
            self.security_logger.log(SecurityEvent.LINK_EXPIRED, link_id=link.id, ip_address=client_ip)
            raise LinkExpiredError(link.id)

        self.audit.log_change(
            entity_type="access_link",
            entity_id=link.id,
            action=AuditAction.UPDATE,
            changes={
                "status": {"old": AccessLinkStatus.ACTIVE.value, "new": AccessLinkStatus.USED.value},
                "comment_id": str(comment.id),
            },
        )
        self.security_logger.log(SecurityEvent.LINK_CONSUMED, link_id=link.id, ip_address=client_ip)
        logger.info(f"Access link {link.id} used, comment {comment.id} recorded")

        return SubmissionReceipt(link_id=link.id, comment=comment, submitted_at=now)

    # =========================================================================
    # EXPIRY
    # =========================================================================

    def check_and_expire(self, link: AccessLink) -> AccessLink:
        """
        Record expiry of an ACTIVE link whose deadline has passed.

        Returns the link with its current status. Idempotent: links that are
        terminal or still within their deadline come back unchanged.
        """
        now = self.clock.now()
        if link.status is not AccessLinkStatus.ACTIVE or not link.is_past_expiry(now):
            return link

        if self.link_db.mark_expired(link.id, now):
            self.security_logger.log(SecurityEvent.LINK_EXPIRED, link_id=link.id)
            self.audit.log_change(
                entity_type="access_link",
                entity_id=link.id,
                action=AuditAction.UPDATE,
                changes={"status": {"old": AccessLinkStatus.ACTIVE.value, "new": AccessLinkStatus.EXPIRED.value}},
            )
            logger.info(f"Access link {link.id} expired")
            return link.model_copy(update={"status": AccessLinkStatus.EXPIRED, "updated_at": now})

        # Lost a race with another writer; report whatever it stored
        return self._get_link(link.id)

    def expire_overdue_links(self) -> int:
        """Sweep: expire every ACTIVE link past its deadline. Returns how many."""
        expired = self.link_db.expire_overdue(self.clock.now())
        for link_id in expired:
            self.security_logger.log(SecurityEvent.LINK_EXPIRED, link_id=link_id)
        if expired:
            logger.info(f"Expired {len(expired)} overdue access links")
        return len(expired)

    def purge_terminal_links(self, grace: timedelta | None = None) -> int:
        """Retention: delete USED/EXPIRED links untouched for the grace period."""
        if grace is None:
            grace = timedelta(days=self.config.purge_grace_days)
        deleted = self.link_db.purge_terminal(self.clock.now() - grace)
        if deleted:
            logger.info(f"Purged {deleted} used or expired access links")
        return deleted

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _get_link(self, link_id: UUID) -> AccessLink:
        link = self.link_db.get_link(link_id)
        if link is None:
            raise NotFoundError(f"Access link {link_id} not found")
        return link

    def _require_active(self, link: AccessLink, client_ip: str | None = None) -> None:
        if link.status is AccessLinkStatus.ACTIVE:
            return
        self.security_logger.log(
            SecurityEvent.LINK_INACTIVE_ACCESS,
            link_id=link.id,
            ip_address=client_ip,
            details={"status": link.status.value},
        )
        if link.status is AccessLinkStatus.EXPIRED:
            raise LinkExpiredError(link.id)
        raise LinkInactiveError(link.id)
