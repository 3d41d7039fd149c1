"""
Identity sync engine.

Reconciles UserRecords against the directory, one record at a time:

    validate -> existence probe (username, then email) -> create -> actions email

An existing account is a successful outcome (already_existed=True), which
makes a second run over the same records create nothing. Any other failure is
confined to that record's SyncResult and the batch continues. Authentication
failures are the exception: the session is gone, so the current record and
all remaining ones are reported as failed without further calls.

Dry runs follow the same control flow without touching the network:
existence and failures are simulated with configurable probabilities.
"""

import asyncio
import logging
import random
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from config.config import SyncConfig
from core.errors.exceptions import AuthError, DirectoryConflictError, ProvisioningError
from core.logging.context_managers import LogContext, log_phase
from core.logging.utilities import log_exception, log_with_context
from core.security.validators import validate_user
from provisioning.directory import KeycloakDirectory
from provisioning.ids import InstitutionalIdPolicy
from provisioning.models import (
    DEFAULT_SYNC_ATTRIBUTES,
    SyncableAttribute,
    SyncResult,
    SyncSummary,
    UserRecord,
    UserType,
)
from provisioning.profile import ProviderProfile

logger = logging.getLogger(__name__)

SIMULATED_FAILURE = "Simulated validation error: Invalid email format"
SESSION_LOST = "session lost"

FIRST_CLASS_FIELDS = {
    SyncableAttribute.FIRST_NAME: "firstName",
    SyncableAttribute.LAST_NAME: "lastName",
    SyncableAttribute.EMAIL: "email",
}

ProgressCallback = Callable[[int, int, SyncResult], None]


def build_user_payload(
    values: Dict[str, Any],
    attributes: Iterable[SyncableAttribute],
    settings: SyncConfig,
    profile: Optional[ProviderProfile] = None,
) -> Dict[str, Any]:
    """
    Directory representation of a new account.

    Only the selected attributes are copied from the record. Organisational
    attributes are taken from the administrator's profile.

    Args:
        values: Sanitized record fields (first_name, last_name, email, ...)
        attributes: Attributes selected by the operator
        settings: Sync settings (attribute names, role marker, actions)
        profile: Administrator profile supplying school number and admin id
    """
    payload: Dict[str, Any] = {
        "username": values["email"],
        "enabled": True,
        "emailVerified": False,
        "requiredActions": list(settings.required_actions),
        "attributes": {},
    }

    for attribute in attributes:
        attribute = SyncableAttribute(attribute)
        value = values.get(attribute.value)
        if value is None or value == "":
            continue
        if attribute in FIRST_CLASS_FIELDS:
            payload[FIRST_CLASS_FIELDS[attribute]] = value
        else:
            name = settings.attribute_names.get(attribute.value, attribute.value)
            payload["attributes"][name] = [str(value)]

    if profile is not None:
        payload["attributes"][settings.role_attribute] = [settings.created_role]
        if profile.school_number:
            payload["attributes"][settings.school_number_attribute] = [profile.school_number]
        if profile.user_id:
            payload["attributes"][settings.school_admin_attribute] = [profile.user_id]

    return payload


class IdentitySyncEngine:
    """
    Sequential reconciliation of records against one directory.

    Args:
        directory: Admin client (unused in dry runs)
        settings: Sync settings from config
        profile: Signed-in administrator's profile
        id_policy: Institutional ID rule applied to teachers
        rng: Random source for dry-run simulation
        sleep: Coroutine used for simulated latency
    """

    def __init__(
        self,
        directory: Optional[KeycloakDirectory],
        settings: Optional[SyncConfig] = None,
        profile: Optional[ProviderProfile] = None,
        id_policy: Optional[InstitutionalIdPolicy] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.directory = directory
        self.settings = settings or SyncConfig()
        self.profile = profile
        self.id_policy = id_policy or InstitutionalIdPolicy()
        self._rng = rng or random.Random()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_users(
        self,
        records: Sequence[UserRecord],
        attributes: Sequence[SyncableAttribute] = DEFAULT_SYNC_ATTRIBUTES,
        dry_run: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[SyncResult]:
        """
        Sync records strictly in order, one request in flight at a time.

        Always returns one SyncResult per record. If the session is lost
        mid-batch, the current and remaining records fail with SESSION_LOST.
        """
        results: List[SyncResult] = []
        batch_id = uuid.uuid4().hex[:12]

        with LogContext(batch_id=batch_id, stage="sync"):
            with log_phase(logger, "sync_users", level=logging.INFO, records_total=len(records), dry_run=dry_run):
                for position, record in enumerate(records, start=1):
                    try:
                        result = await self.sync_user(record, attributes, dry_run=dry_run)
                    except AuthError as e:
                        self._log_session_lost(e, len(records) - position + 1)
                        for lost_position, lost in enumerate(records[position - 1 :], start=position):
                            result = SyncResult(record_id=lost.id, success=False, error=SESSION_LOST)
                            results.append(result)
                            if on_progress is not None:
                                on_progress(lost_position, len(records), result)
                        break
                    results.append(result)
                    if on_progress is not None:
                        on_progress(position, len(records), result)

            summary = SyncSummary.from_results(results)
            log_with_context(
                logger,
                logging.INFO,
                "Sync batch finished",
                records_total=summary.total,
                records_created=summary.created,
                records_existing=summary.already_existed,
                records_failed=summary.failed,
                dry_run=dry_run,
            )
        return results

    async def sync_user(
        self,
        record: UserRecord,
        attributes: Sequence[SyncableAttribute] = DEFAULT_SYNC_ATTRIBUTES,
        dry_run: bool = False,
    ) -> SyncResult:
        validation = validate_user(record, require_email=True)
        if not validation.is_valid:
            return SyncResult(
                record_id=record.id,
                success=False,
                error=f"Invalid user data: {', '.join(validation.errors)}",
            )

        if record.user_type is UserType.TEACHER:
            school_number = self.profile.school_number if self.profile else None
            policy_error = self.id_policy.check(record.institutional_id, school_number)
            if policy_error:
                return SyncResult(record_id=record.id, success=False, error=policy_error)

        try:
            payload = build_user_payload(validation.fields, attributes, self.settings, self.profile)
            if dry_run:
                return await self._simulate(record, payload)
            return await self._create(record, payload)
        except AuthError:
            raise
        except Exception as e:
            log_exception(
                logger,
                e,
                "User sync failed",
                level=logging.WARNING,
                include_traceback=not isinstance(e, ProvisioningError),
                record_id=record.id,
            )
            return SyncResult(record_id=record.id, success=False, error=str(e))

    async def _simulate(self, record: UserRecord, payload: Dict[str, Any]) -> SyncResult:
        settings = self.settings
        await self._sleep(
            self._rng.uniform(settings.dry_run_min_latency_seconds, settings.dry_run_max_latency_seconds)
        )

        if self._rng.random() < settings.dry_run_exists_probability:
            logger.info("DRY RUN - user already exists", extra={"record_id": record.id, "dry_run": True})
            return SyncResult(record_id=record.id, success=True, already_existed=True)

        if self._rng.random() < settings.dry_run_failure_probability:
            return SyncResult(record_id=record.id, success=False, error=SIMULATED_FAILURE)

        logger.info(
            "DRY RUN - would create user",
            extra={"record_id": record.id, "payload": payload, "dry_run": True},
        )
        return SyncResult(record_id=record.id, success=True)

    async def _create(self, record: UserRecord, payload: Dict[str, Any]) -> SyncResult:
        if self.directory is None:
            raise ValueError("A directory client is required outside dry runs")

        username = payload["username"]
        if await self.directory.user_exists(username, email=username):
            logger.info("User already exists", extra={"record_id": record.id})
            return SyncResult(record_id=record.id, success=True, already_existed=True)

        try:
            user_id = await self.directory.create_user(payload)
        except DirectoryConflictError:
            logger.info("User created concurrently, treating as existing", extra={"record_id": record.id})
            return SyncResult(record_id=record.id, success=True, already_existed=True)

        logger.info("User created", extra={"record_id": record.id, "user_id": user_id})
        await self._send_actions_email(record, username, user_id)
        return SyncResult(record_id=record.id, success=True)

    async def _send_actions_email(self, record: UserRecord, username: str, user_id: Optional[str]) -> None:
        """
        Best effort: the account exists whether or not the email goes out.

        Failures, including a lost session, are logged and never fail the record.
        """
        if not self.settings.send_actions_email or not self.settings.required_actions:
            return
        try:
            if user_id is None:
                matches = await self.directory.find_users(username=username, exact=True)
                if not matches:
                    logger.warning("Created user not found for actions email", extra={"record_id": record.id})
                    return
                user_id = matches[0].id
            await self.directory.execute_actions_email(user_id, self.settings.required_actions)
        except Exception as e:
            log_exception(
                logger,
                e,
                "Actions email failed, user was created",
                level=logging.WARNING,
                include_traceback=not isinstance(e, ProvisioningError),
                record_id=record.id,
            )

    def _log_session_lost(self, error: AuthError, remaining: int) -> None:
        log_exception(
            logger,
            error,
            "Session lost, remaining records not attempted",
            level=logging.ERROR,
            include_traceback=False,
            records_failed=remaining,
        )

    # ------------------------------------------------------------------
    # Bulk account state
    # ------------------------------------------------------------------

    async def set_enabled_many(
        self, user_ids: Sequence[str], enabled: bool, dry_run: bool = False
    ) -> List[SyncResult]:
        async def toggle(user_id: str) -> None:
            await self.directory.set_enabled(user_id, enabled)

        return await self._each(user_ids, toggle, "enable" if enabled else "disable", dry_run)

    async def delete_many(self, user_ids: Sequence[str], dry_run: bool = False) -> List[SyncResult]:
        return await self._each(user_ids, self._delete, "delete", dry_run)

    async def _delete(self, user_id: str) -> None:
        await self.directory.delete_user(user_id)

    async def _each(
        self,
        user_ids: Sequence[str],
        action: Callable[[str], Awaitable[None]],
        operation: str,
        dry_run: bool,
    ) -> List[SyncResult]:
        results: List[SyncResult] = []
        for position, user_id in enumerate(user_ids):
            if dry_run:
                logger.info(f"DRY RUN - would {operation} user", extra={"user_id": user_id, "dry_run": True})
                results.append(SyncResult(record_id=user_id, success=True))
                continue
            try:
                await action(user_id)
                results.append(SyncResult(record_id=user_id, success=True))
            except AuthError as e:
                self._log_session_lost(e, len(user_ids) - position)
                results.extend(
                    SyncResult(record_id=lost, success=False, error=SESSION_LOST) for lost in user_ids[position:]
                )
                break
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    f"Failed to {operation} user",
                    level=logging.WARNING,
                    include_traceback=not isinstance(e, ProvisioningError),
                    user_id=user_id,
                    operation=operation,
                )
                results.append(SyncResult(record_id=user_id, success=False, error=str(e)))
        return results


__all__ = [
    "IdentitySyncEngine",
    "SESSION_LOST",
    "SIMULATED_FAILURE",
    "build_user_payload",
]
