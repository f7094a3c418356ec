"""Approval state machine for procurement requests.

Features:
- Value- and department-driven approval chains
- Sequential per-level approve / reject
- Delegation and escalation within a level
- Recall by the requester and deadline expiry
- Optimistic concurrency with bounded retries
- Audit and notifications strictly after commit
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Coroutine

from procurement_approvals.core.config import Settings, get_settings
from procurement_approvals.services.approval.authority import (
    authorized_approver,
    effective_approver,
)
from procurement_approvals.services.approval.chain_builder import ChainBuilder
from procurement_approvals.services.approval.exceptions import (
    ApprovalError,
    AuditRecordingError,
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidRequestError,
    NoEscalationPathError,
    NotFoundError,
    NotPendingError,
    StoreTimeoutError,
    UnauthorizedError,
)
from procurement_approvals.services.approval.expiry_policy import ExpiryPolicy
from procurement_approvals.services.approval.interfaces import (
    AuditRecorder,
    DepartmentDirectory,
    NotificationDispatcher,
    PermissionRegistry,
    PostApprovalHook,
    TransactionalStore,
)
from procurement_approvals.services.approval.notifications import ApprovalNotifier, Notice
from procurement_approvals.services.approval.schemas import (
    ACTIVE_STATUSES,
    ApprovalListItem,
    ApprovalListResponse,
    ApprovalQuery,
    ApprovalRequest,
    ApprovalRequestCreate,
    ApprovalStats,
    ApprovalStatus,
    ApprovalType,
    ApproveRequest,
    AuditEvent,
    CurrentApprover,
    DelegateRequest,
    DelegationEntry,
    EscalationEntry,
    HistoryAction,
    HistoryEntry,
    PaginationMeta,
    RejectRequest,
    StepStatus,
    WorkflowPreview,
)
from procurement_approvals.services.rbac.definitions import required_permission_for

logger = logging.getLogger(__name__)

__all__ = [
    "ApprovalStateMachine",
    "authorized_approver",
    "effective_approver",
    "drain_approval_state_machine",
    "get_approval_state_machine",
    "reset_approval_state_machine",
]


class _Unchanged(Exception):
    """Raised inside a mutation to end the transition without writing."""

    def __init__(self, request: ApprovalRequest):
        self.request = request
        super().__init__(request.id)


class _SideEffects:
    """Audit events, notices and hooks collected while a transition is applied."""

    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self.audit_events: list[AuditEvent] = []
        self.notices: list[Notice] = []
        self.run_post_approval = False


Apply = Callable[[ApprovalRequest, _SideEffects, str, datetime], None]


class ApprovalStateMachine:
    """Lifecycle of approval requests.

    Each operation reads the aggregate, validates and mutates it inside
    ``store.commit`` and retries the whole operation on version conflicts.
    Validation failures leave the stored aggregate untouched.
    """

    def __init__(
        self,
        store: TransactionalStore,
        audit: AuditRecorder,
        notifier: NotificationDispatcher,
        directory: DepartmentDirectory,
        permissions: PermissionRegistry,
        *,
        chain_builder: ChainBuilder | None = None,
        expiry_policy: ExpiryPolicy | None = None,
        post_approval_hooks: dict[ApprovalType, PostApprovalHook] | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the state machine.

        @param store - Transactional store for approval aggregates
        @param audit - Audit event sink
        @param notifier - Notification dispatcher
        @param directory - Department directory
        @param permissions - Permission registry used by delegation
        @param chain_builder - Chain builder (built from directory if None)
        @param expiry_policy - Priority and deadline policy
        @param post_approval_hooks - Actions run after final approval, per type
        @param settings - Application settings
        @param clock - Returns the current UTC time
        """
        self.settings = settings or get_settings()
        self.store = store
        self.audit = audit
        self.notifier = ApprovalNotifier(
            notifier,
            frontend_url=self.settings.frontend_url,
            timeout=self.settings.approval_notification_timeout_seconds,
        )
        self.directory = directory
        self.permissions = permissions
        self.chain_builder = chain_builder or ChainBuilder(directory)
        self.expiry_policy = expiry_policy or ExpiryPolicy()
        self.post_approval_hooks: dict[ApprovalType, PostApprovalHook] = dict(
            post_approval_hooks or {}
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return self._clock()

    @property
    def _store_timeout(self) -> float:
        return self.settings.approval_store_timeout_seconds

    async def _read(self, request_id: str) -> ApprovalRequest:
        try:
            return await asyncio.wait_for(self.store.get(request_id), self._store_timeout)
        except asyncio.TimeoutError:
            raise StoreTimeoutError(request_id)

    async def _resolve_unknown_outcome(
        self, request_id: str, transition_id: str
    ) -> ApprovalRequest | None:
        """Re-read after a timed-out commit.

        @returns The committed aggregate if the attempt was applied, else None
        """
        request = await self._read(request_id)
        if any(e.transition_id == transition_id for e in request.approval_history):
            return request
        return None

    async def _transition(
        self, request_id: str, action: str, apply: Apply
    ) -> ApprovalRequest:
        """Run one state transition with conflict retries.

        @param request_id - Request ID
        @param action - Action name for logging
        @param apply - Validates and mutates the aggregate copy
        @returns Committed aggregate (or the current one for a no-op)
        @raises ApprovalError subclasses on validation failure or exhausted retries
        """
        attempts = self.settings.approval_max_commit_attempts
        last_error: ApprovalError = ConflictError(request_id)

        for attempt in range(1, attempts + 1):
            current = await self._read(request_id)
            effects = _SideEffects()
            transition_id = uuid.uuid4().hex
            now = self._now()

            def mutate(request: ApprovalRequest) -> None:
                effects.clear()
                apply(request, effects, transition_id, now)
                request.updated_at = now

            try:
                committed = await asyncio.wait_for(
                    self.store.commit(request_id, current.version, mutate),
                    self._store_timeout,
                )
            except _Unchanged as unchanged:
                return unchanged.request
            except ConflictError as e:
                last_error = e
                logger.warning(
                    f"Conflict on {action} for {request_id} "
                    f"(attempt {attempt}/{attempts})"
                )
                continue
            except asyncio.TimeoutError:
                logger.warning(
                    f"Commit of {action} for {request_id} timed out; re-reading "
                    f"(attempt {attempt}/{attempts})"
                )
                committed = await self._resolve_unknown_outcome(request_id, transition_id)
                if committed is None:
                    last_error = StoreTimeoutError(request_id)
                    continue

            logger.info(
                f"Approval {request_id} {action}: status={committed.status.value} "
                f"level={committed.current_level}/{committed.total_levels}",
                extra={"request_id": request_id, "transition_id": transition_id},
            )
            await self._dispatch(committed, effects)
            return committed

        logger.error(f"Giving up {action} for {request_id} after {attempts} attempts")
        raise last_error

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_for_side_effects(self) -> None:
        """Wait until all background notifications and audit writes finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _record_audit_quietly(self, event: AuditEvent) -> None:
        try:
            await asyncio.wait_for(self.audit.record(event), self._store_timeout)
        except Exception:
            logger.error(
                f"Audit recording failed for {event.request_id} ({event.action})",
                exc_info=True,
            )

    async def _run_post_approval_hook(self, request: ApprovalRequest) -> None:
        hook = self.post_approval_hooks.get(request.type)
        if hook is None:
            return
        try:
            await hook(request)
        except Exception:
            logger.error(
                f"Post-approval action failed for {request.id} ({request.type.value})",
                exc_info=True,
            )

    async def _dispatch(self, request: ApprovalRequest, effects: _SideEffects) -> None:
        """Fire side effects of a committed transition.

        Notifications, hooks and best-effort audit run in the background.
        Mandatory audit is awaited and its failure surfaced.
        """
        if effects.notices:
            self._spawn(self.notifier.dispatch(list(effects.notices)))
        if effects.run_post_approval:
            self._spawn(self._run_post_approval_hook(request))

        for event in effects.audit_events:
            if not self.settings.approval_audit_mandatory:
                self._spawn(self._record_audit_quietly(event))
                continue
            try:
                await asyncio.wait_for(self.audit.record(event), self._store_timeout)
            except Exception as e:
                logger.error(
                    f"Mandatory audit failed for {event.request_id} ({event.action})",
                    exc_info=True,
                )
                raise AuditRecordingError(
                    f"Approval {event.request_id} was {event.action} but the audit "
                    f"record could not be written",
                    request_id=event.request_id,
                    action=event.action,
                ) from e

    # ------------------------------------------------------------------
    # Shared validation and history helpers
    # ------------------------------------------------------------------

    def _ensure_actionable(self, request: ApprovalRequest, now: datetime) -> None:
        if request.is_terminal:
            raise NotPendingError(request.id, request.status.value)
        if now > request.expires_at:
            raise ExpiredError(request.id)

    def _ensure_authorized(self, request: ApprovalRequest, actor_id: str) -> None:
        expected = authorized_approver(request)
        if expected is None or actor_id != expected:
            raise UnauthorizedError(
                f"User {actor_id} is not the approver for level "
                f"{request.current_level} of approval {request.id}",
                request_id=request.id,
                level=request.current_level,
            )

    def _append_history(
        self,
        request: ApprovalRequest,
        transition_id: str,
        now: datetime,
        action: HistoryAction,
        user_id: str | None,
        **fields: Any,
    ) -> None:
        request.approval_history.append(
            HistoryEntry(
                entry_id=uuid.uuid4().hex,
                transition_id=transition_id,
                level=min(request.current_level, request.total_levels),
                user_id=user_id,
                action=action,
                timestamp=now,
                **fields,
            )
        )

    def _audit(
        self,
        effects: _SideEffects,
        request: ApprovalRequest,
        action: str,
        actor_id: str | None,
        now: datetime,
        transition_id: str | None = None,
        **metadata: Any,
    ) -> None:
        effects.audit_events.append(
            AuditEvent(
                request_id=request.id,
                action=action,
                actor_id=actor_id,
                timestamp=now,
                metadata={
                    "status": request.status.value,
                    "level": request.current_level,
                    "transition_id": transition_id,
                    **metadata,
                },
            )
        )

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _validate_submission(self, data: ApprovalRequestCreate) -> ApprovalType:
        """Check required and type-specific fields.

        @param data - Submission data
        @returns Parsed approval type
        @raises InvalidRequestError when a field is missing or malformed
        """
        missing = [
            name
            for name in ("type", "title", "description", "department")
            if not (getattr(data, name) or "").strip()
        ]
        if missing:
            raise InvalidRequestError(
                f"Missing required fields: {', '.join(missing)}", fields=missing
            )

        try:
            approval_type = ApprovalType(data.type)
        except ValueError:
            raise InvalidRequestError(
                f"Invalid approval type: {data.type}", field="type"
            )

        if data.value is not None and data.value < 0:
            raise InvalidRequestError("Value must be non-negative", field="value")

        if approval_type == ApprovalType.PROCUREMENT_PLAN and not data.procurement_id:
            raise InvalidRequestError(
                "Procurement ID is required for procurement plan approval",
                field="procurement_id",
            )
        if approval_type == ApprovalType.BUDGET_APPROVAL and not (
            data.value is not None and data.value > 0
        ):
            raise InvalidRequestError(
                "Valid value is required for budget approval", field="value"
            )
        if approval_type == ApprovalType.CONTRACT_EXECUTION and not data.contract_id:
            raise InvalidRequestError(
                "Contract ID is required for contract execution approval",
                field="contract_id",
            )
        return approval_type

    async def submit_request(
        self, data: ApprovalRequestCreate, requester_id: str
    ) -> ApprovalRequest:
        """Create a new approval request.

        @param data - Submission data
        @param requester_id - Originator
        @returns Persisted request (status pending, level 1)
        @raises InvalidRequestError if the submission is incomplete
        """
        approval_type = self._validate_submission(data)
        department = data.department.strip()
        now = self._now()

        chain = self.chain_builder.build_chain(approval_type, data.value, department, now)
        unassigned = [s.role for s in chain if not s.approver_id]
        if unassigned:
            raise InvalidRequestError(
                f"No approver configured in {department} for: {', '.join(unassigned)}",
                department=department,
                roles=unassigned,
            )

        priority = self.expiry_policy.priority(
            data.value, approval_type, data.urgent, data.emergency
        )
        request = ApprovalRequest(
            id=f"APR-{uuid.uuid4().hex[:12].upper()}",
            type=approval_type,
            title=data.title.strip(),
            description=data.description.strip(),
            value=data.value,
            department=department,
            cost_center=data.cost_center,
            procurement_id=data.procurement_id,
            contract_id=data.contract_id,
            stakeholders=list(data.stakeholders),
            metadata=dict(data.metadata),
            status=ApprovalStatus.PENDING,
            approval_chain=chain,
            current_level=1,
            total_levels=len(chain),
            current_approver=CurrentApprover(
                user_id=chain[0].approver_id, level=1, assigned_at=now
            ),
            priority=priority,
            expires_at=self.expiry_policy.expiry(approval_type, priority, now),
            requested_by=requester_id,
            created_at=now,
            updated_at=now,
        )

        created = await self._insert(request)

        effects = _SideEffects()
        self._audit(
            effects,
            created,
            "created",
            requester_id,
            now,
            type=approval_type.value,
            value=str(data.value) if data.value is not None else None,
            priority=priority.value,
            total_levels=created.total_levels,
            expires_at=created.expires_at.isoformat(),
        )
        effects.notices.extend(self.notifier.approver_notices(created, "new_approval"))

        logger.info(
            f"Created approval {created.id} type={approval_type.value} "
            f"levels={created.total_levels} priority={priority.value}",
            extra={"request_id": created.id},
        )
        await self._dispatch(created, effects)
        return created

    async def _insert(self, request: ApprovalRequest) -> ApprovalRequest:
        attempts = self.settings.approval_max_commit_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(self.store.insert(request), self._store_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Insert of {request.id} timed out; re-reading "
                    f"(attempt {attempt}/{attempts})"
                )
                try:
                    return await self._read(request.id)
                except NotFoundError:
                    continue
        raise StoreTimeoutError(request.id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _is_replayed_approval(
        self, request: ApprovalRequest, approver_id: str, level: int | None
    ) -> bool:
        """Detect a retry of an approval that already succeeded.

        Without an explicit level, a call whose latest history entry is the
        same approver's approval is a retry, so one user holding two
        consecutive levels must name the level to approve the second one.
        Rejected, recalled and expired requests are never replays.
        """
        if request.is_terminal and request.status != ApprovalStatus.APPROVED:
            return False
        own = [
            e for e in request.approval_history
            if e.action == HistoryAction.APPROVED and e.user_id == approver_id
        ]
        if not own:
            return False
        if level is not None:
            return any(e.level == level for e in own)
        if request.status == ApprovalStatus.APPROVED:
            return request.final_approver == approver_id
        latest = request.approval_history[-1]
        return latest.action == HistoryAction.APPROVED and latest.user_id == approver_id

    async def approve(
        self,
        request_id: str,
        approver_id: str,
        data: ApproveRequest | None = None,
    ) -> ApprovalRequest:
        """Approve the current level.

        A retry of an approval that already succeeded returns the current
        state unchanged.

        @param request_id - Request ID
        @param approver_id - Acting user
        @param data - Comments, conditions and optional level
        @returns Updated request
        @raises NotFoundError, NotPendingError, ExpiredError, UnauthorizedError
        """
        data = data or ApproveRequest()

        def apply(request: ApprovalRequest, fx: _SideEffects, tid: str, now: datetime) -> None:
            if self._is_replayed_approval(request, approver_id, data.level):
                logger.info(f"Replayed approval of {request_id} by {approver_id}; no change")
                raise _Unchanged(request)
            self._ensure_actionable(request, now)
            if data.level is not None and data.level != request.current_level:
                raise NotPendingError(
                    request.id,
                    request.status.value,
                    f"Level {data.level} of approval {request.id} is not awaiting "
                    f"approval (current level {request.current_level})",
                )
            self._ensure_authorized(request, approver_id)

            level = request.current_level
            step = request.current_step
            step.status = StepStatus.APPROVED
            step.approved_at = now
            step.comments = data.comments
            step.conditions = list(data.conditions)
            self._append_history(
                request, tid, now, HistoryAction.APPROVED, approver_id,
                comments=data.comments, conditions=list(data.conditions),
            )

            if level == request.total_levels:
                request.status = ApprovalStatus.APPROVED
                request.approved_at = now
                request.final_approver = approver_id
                request.current_level = request.total_levels + 1
                fx.notices.extend(self.notifier.completion_notices(request))
                fx.run_post_approval = True
            else:
                request.current_level = level + 1
                request.status = ApprovalStatus.PENDING
                next_step = request.current_step
                next_step.assigned_at = now
                request.current_approver = CurrentApprover(
                    user_id=next_step.approver_id,
                    level=request.current_level,
                    assigned_at=now,
                )
                fx.notices.extend(
                    self.notifier.approver_notices(request, "approval_required")
                )

            self._audit(
                fx, request, "approved", approver_id, now, tid,
                approved_level=level,
                final=request.status == ApprovalStatus.APPROVED,
                comments=data.comments,
            )

        return await self._transition(request_id, "approved", apply)

    async def reject(
        self,
        request_id: str,
        approver_id: str,
        data: RejectRequest,
    ) -> ApprovalRequest:
        """Reject the request at its current level.

        Rejection is final for the whole request; ``return_to_level`` is
        stored as a resubmission hint only.

        @param request_id - Request ID
        @param approver_id - Acting user
        @param data - Reason, comments and resubmission hints
        @returns Rejected request
        """

        def apply(request: ApprovalRequest, fx: _SideEffects, tid: str, now: datetime) -> None:
            self._ensure_actionable(request, now)
            self._ensure_authorized(request, approver_id)
            if data.return_to_level and data.return_to_level >= request.current_level:
                raise InvalidRequestError(
                    f"return_to_level must be below the current level "
                    f"{request.current_level}",
                    field="return_to_level",
                )

            step = request.current_step
            step.status = StepStatus.REJECTED
            step.rejected_at = now
            step.rejection_reason = data.reason
            step.comments = data.comments

            request.status = ApprovalStatus.REJECTED
            request.rejected_at = now
            request.rejected_by = approver_id
            request.rejection_reason = data.reason
            request.allow_resubmission = data.allow_resubmission
            request.return_to_level = data.return_to_level or None

            self._append_history(
                request, tid, now, HistoryAction.REJECTED, approver_id,
                comments=data.comments,
                rejection_reason=data.reason,
                return_to_level=data.return_to_level or None,
                allow_resubmission=data.allow_resubmission,
            )
            self._audit(fx, request, "rejected", approver_id, now, tid, reason=data.reason)
            fx.notices.extend(self.notifier.rejection_notices(request))

        return await self._transition(request_id, "rejected", apply)

    def _validate_delegate(self, request: ApprovalRequest, delegate_id: str) -> None:
        """Check the delegate exists, holds the type's permission and department rules.

        @raises ForbiddenError when any check fails
        """
        delegate_department = self.directory.department_of(delegate_id)
        if delegate_department is None:
            raise ForbiddenError(
                f"Delegate {delegate_id} is not a known user", delegate_id=delegate_id
            )

        permission = required_permission_for(request.type)
        if not self.permissions.has_permission(delegate_id, permission.value):
            raise ForbiddenError(
                f"Delegate {delegate_id} does not have required permission "
                f"{permission.value}",
                delegate_id=delegate_id,
                permission=permission.value,
            )

        if (
            delegate_department != request.department
            and not self.permissions.cross_department_delegation_allowed(request.type)
        ):
            raise ForbiddenError(
                f"Cross-department delegation not allowed for {request.type.value}",
                delegate_id=delegate_id,
                delegate_department=delegate_department,
            )

    async def delegate(
        self,
        request_id: str,
        current_approver_id: str,
        data: DelegateRequest,
    ) -> ApprovalRequest:
        """Hand the current level's authority to another user.

        The chain, ``current_level`` and ``total_levels`` are unchanged.

        @param request_id - Request ID
        @param current_approver_id - User currently holding authority
        @param data - Delegate, reason and optional authority expiry
        @returns Updated request
        @raises ForbiddenError if the delegate is not eligible
        """

        def apply(request: ApprovalRequest, fx: _SideEffects, tid: str, now: datetime) -> None:
            self._ensure_actionable(request, now)
            self._ensure_authorized(request, current_approver_id)
            if data.delegate_to == current_approver_id:
                raise InvalidRequestError("Cannot delegate to yourself", field="delegate_to")
            self._validate_delegate(request, data.delegate_to)
            if data.expires_at is not None and data.expires_at <= now:
                raise InvalidRequestError(
                    "Delegation expiry must be in the future", field="expires_at"
                )

            step = request.current_step
            step.delegated_to = data.delegate_to
            step.delegated_at = now
            step.delegation_reason = data.reason
            step.status = StepStatus.DELEGATED

            request.current_approver = CurrentApprover(
                user_id=data.delegate_to,
                level=request.current_level,
                assigned_at=now,
                delegated_from=current_approver_id,
                expires_at=data.expires_at,
            )

            request.delegation_history.append(
                DelegationEntry(
                    level=request.current_level,
                    from_user_id=current_approver_id,
                    to_user_id=data.delegate_to,
                    reason=data.reason,
                    comments=data.comments,
                    timestamp=now,
                    expires_at=data.expires_at,
                )
            )
            self._append_history(
                request, tid, now, HistoryAction.DELEGATED, current_approver_id,
                comments=data.comments,
            )
            self._audit(
                fx, request, "delegated", current_approver_id, now, tid,
                delegate_to=data.delegate_to,
                reason=data.reason,
            )
            fx.notices.extend(self.notifier.delegation_notices(request, current_approver_id))

        return await self._transition(request_id, "delegated", apply)

    async def escalate(
        self,
        request_id: str,
        reason: str,
        escalated_by_id: str | None = None,
    ) -> ApprovalRequest:
        """Redirect the current level to a higher authority.

        @param request_id - Request ID
        @param reason - Escalation reason
        @param escalated_by_id - User escalating, None for the system
        @returns Escalated request
        @raises NoEscalationPathError if no target is available
        """

        def apply(request: ApprovalRequest, fx: _SideEffects, tid: str, now: datetime) -> None:
            self._ensure_actionable(request, now)
            target = self.directory.escalation_target_for(request)
            if target is None:
                raise NoEscalationPathError(request.id)

            previous = authorized_approver(request)
            request.status = ApprovalStatus.ESCALATED
            request.escalated_at = now
            request.escalated_by = escalated_by_id
            request.escalation_reason = reason
            request.current_approver = CurrentApprover(
                user_id=target.user_id,
                level=request.current_level,
                assigned_at=now,
                is_escalation=True,
                original_level=request.current_level,
            )
            request.escalation_history.append(
                EscalationEntry(
                    from_level=request.current_level,
                    to_level=target.level,
                    from_user_id=previous,
                    to_user_id=target.user_id,
                    reason=reason,
                    timestamp=now,
                    escalated_by=escalated_by_id,
                )
            )
            self._append_history(
                request, tid, now, HistoryAction.ESCALATED, escalated_by_id, comments=reason
            )
            self._audit(
                fx, request, "escalated", escalated_by_id, now, tid,
                escalated_to=target.user_id,
                escalated_from=previous,
                reason=reason,
            )
            fx.notices.extend(self.notifier.escalation_notices(request, target))

        return await self._transition(request_id, "escalated", apply)

    async def recall(
        self,
        request_id: str,
        requester_id: str,
        reason: str | None = None,
    ) -> ApprovalRequest:
        """Withdraw a pending request; a second recall fails with NotPending.

        @param request_id - Request ID
        @param requester_id - Must be the original requester
        @param reason - Recall reason
        @returns Recalled request
        """

        def apply(request: ApprovalRequest, fx: _SideEffects, tid: str, now: datetime) -> None:
            if request.requested_by != requester_id:
                raise UnauthorizedError(
                    f"Only the requester can recall approval {request.id}",
                    request_id=request.id,
                )
            if request.status != ApprovalStatus.PENDING:
                raise NotPendingError(request.id, request.status.value)

            previous = authorized_approver(request)
            request.status = ApprovalStatus.RECALLED
            request.recalled_at = now
            request.recall_reason = reason
            self._append_history(
                request, tid, now, HistoryAction.RECALLED, requester_id, comments=reason
            )
            self._audit(fx, request, "recalled", requester_id, now, tid, reason=reason)
            fx.notices.extend(self.notifier.recall_notices(request, previous))

        return await self._transition(request_id, "recalled", apply)

    async def check_expiry(self, request_id: str) -> ApprovalRequest:
        """Expire the request if its deadline has passed.

        @param request_id - Request ID
        @returns Current request, expired if it was overdue
        """

        def apply(request: ApprovalRequest, fx: _SideEffects, tid: str, now: datetime) -> None:
            if request.status not in ACTIVE_STATUSES or now <= request.expires_at:
                raise _Unchanged(request)

            request.status = ApprovalStatus.EXPIRED
            request.expired_at = now
            self._append_history(request, tid, now, HistoryAction.EXPIRED, None)
            self._audit(
                fx, request, "expired", None, now, tid,
                expires_at=request.expires_at.isoformat(),
            )
            fx.notices.extend(self.notifier.expiry_notices(request))

        return await self._transition(request_id, "expired", apply)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _is_overdue(self, request: ApprovalRequest, now: datetime) -> bool:
        return request.status in ACTIVE_STATUSES and now > request.expires_at

    async def get_request(self, request_id: str) -> ApprovalRequest:
        """Get a request, expiring it first if it is overdue.

        @param request_id - Request ID
        @returns Approval request
        @raises NotFoundError if missing
        """
        request = await self._read(request_id)
        if self.settings.approval_lazy_expiry and self._is_overdue(request, self._now()):
            return await self.check_expiry(request_id)
        return request

    def _to_list_item(self, request: ApprovalRequest, now: datetime) -> ApprovalListItem:
        return ApprovalListItem(
            id=request.id,
            type=request.type,
            title=request.title,
            department=request.department,
            value=str(request.value) if request.value is not None else None,
            status=request.status,
            priority=request.priority,
            current_level=request.current_level,
            total_levels=request.total_levels,
            current_approver_id=None if request.is_terminal else authorized_approver(request),
            requested_by=request.requested_by,
            expires_at=request.expires_at,
            is_expired=request.status == ApprovalStatus.EXPIRED or self._is_overdue(request, now),
            created_at=request.created_at,
        )

    def _paginate(
        self,
        requests: list[ApprovalRequest],
        page: int,
        page_size: int,
        now: datetime,
    ) -> ApprovalListResponse:
        total_items = len(requests)
        total_pages = (total_items + page_size - 1) // page_size if total_items > 0 else 0
        start = (page - 1) * page_size
        return ApprovalListResponse(
            items=[self._to_list_item(r, now) for r in requests[start:start + page_size]],
            meta=PaginationMeta(
                page=page,
                page_size=page_size,
                total_items=total_items,
                total_pages=total_pages,
            ),
        )

    async def list_requests(self, query: ApprovalQuery | None = None) -> ApprovalListResponse:
        """List requests with filters and pagination.

        @param query - Filters; expired and overdue requests are hidden
                       unless ``include_expired`` is set
        @returns Paginated list, newest first
        """
        query = query or ApprovalQuery()
        now = self._now()
        requests = await self.store.search(query)
        if not query.include_expired:
            requests = [
                r for r in requests
                if r.status != ApprovalStatus.EXPIRED and not self._is_overdue(r, now)
            ]
        return self._paginate(requests, query.page, query.page_size, now)

    async def get_pending_for_approver(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> ApprovalListResponse:
        """Requests awaiting action by a user, most urgent first.

        @param user_id - Approver
        @param page - Page number
        @param page_size - Items per page
        @returns Paginated list sorted by deadline
        """
        now = self._now()
        requests = await self.store.search(
            ApprovalQuery(status=list(ACTIVE_STATUSES), assigned_to=user_id)
        )
        requests = [r for r in requests if not self._is_overdue(r, now)]
        requests.sort(key=lambda r: r.expires_at)
        return self._paginate(requests, page, page_size, now)

    async def get_stats(self) -> ApprovalStats:
        """Get approval workflow statistics.

        @returns Counts per status, average processing time and total value
        """
        requests = await self.store.search(ApprovalQuery())
        counts: dict[ApprovalStatus, int] = {status: 0 for status in ApprovalStatus}
        for request in requests:
            counts[request.status] += 1

        durations = [
            (r.approved_at - r.created_at).total_seconds()
            for r in requests
            if r.status == ApprovalStatus.APPROVED and r.approved_at
        ]
        avg_seconds = sum(durations) / len(durations) if durations else 0.0
        total_value = sum((r.value for r in requests if r.value is not None), Decimal(0))

        return ApprovalStats(
            total_requests=len(requests),
            pending_requests=counts[ApprovalStatus.PENDING] + counts[ApprovalStatus.DELEGATED],
            escalated_requests=counts[ApprovalStatus.ESCALATED],
            approved_requests=counts[ApprovalStatus.APPROVED],
            rejected_requests=counts[ApprovalStatus.REJECTED],
            expired_requests=counts[ApprovalStatus.EXPIRED],
            recalled_requests=counts[ApprovalStatus.RECALLED],
            avg_processing_hours=avg_seconds / 3600.0,
            total_value=str(total_value),
        )

    def preview_workflow(
        self,
        approval_type: ApprovalType,
        value: Decimal | None,
        department: str,
        urgent: bool = False,
        emergency: bool = False,
    ) -> WorkflowPreview:
        """Chain, priority and expiry window a submission would receive."""
        return self.chain_builder.describe(
            approval_type,
            value,
            department,
            urgent=urgent,
            emergency=emergency,
            expiry_policy=self.expiry_policy,
        )

    async def sweep_expired(self) -> list[str]:
        """Expire every overdue active request.

        @returns IDs of requests that were expired by this sweep
        """
        expired: list[str] = []
        for request_id in await self.store.find_overdue(self._now()):
            try:
                request = await self.check_expiry(request_id)
            except ApprovalError as e:
                logger.warning(f"Could not expire {request_id}: [{e.code}] {e.message}")
                continue
            if request.status == ApprovalStatus.EXPIRED:
                expired.append(request_id)
        if expired:
            logger.warning(f"Expired {len(expired)} overdue approvals")
        return expired


# Singleton instance
_state_machine: ApprovalStateMachine | None = None


def get_approval_state_machine() -> ApprovalStateMachine:
    """Get or create the database-backed approval state machine.

    @returns ApprovalStateMachine instance
    """
    global _state_machine
    if _state_machine is None:
        from procurement_approvals.services.approval.store import DatabaseApprovalStore
        from procurement_approvals.services.audit.logger import get_audit_recorder
        from procurement_approvals.services.notification.service import (
            QueuedNotificationDispatcher,
        )
        from procurement_approvals.services.organization.directory import (
            get_department_directory,
        )
        from procurement_approvals.services.rbac.rbac_service import get_rbac_service

        _state_machine = ApprovalStateMachine(
            store=DatabaseApprovalStore(),
            audit=get_audit_recorder(),
            notifier=QueuedNotificationDispatcher(),
            directory=get_department_directory(),
            permissions=get_rbac_service(),
        )
    return _state_machine


async def drain_approval_state_machine() -> None:
    """Wait for background side effects of the running state machine, if any."""
    if _state_machine is not None:
        await _state_machine.wait_for_side_effects()


def reset_approval_state_machine() -> None:
    """Reset approval state machine singleton (for testing)."""
    global _state_machine
    _state_machine = None
