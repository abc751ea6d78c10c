"""
Sync service: pushes scheduling events into users' Google Calendars.

For one event mutation it:
1. Loads the event through the scheduling directory
2. Resolves the (connection, scope) targets that may be affected
3. Per target, compares the scope hash with the stored mapping and
   inserts, updates, retracts or skips
4. Persists the new hash so repeated syncs are free

Every target is isolated: a failure is counted and logged in the
SyncResult and never propagates to the caller.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calendar_sync.config import Settings, get_settings
from calendar_sync.integrations.base import (
    CalendarScope,
    EventChangeKind,
    SchedulingDirectory,
    SyncableEvent,
    SyncTarget,
)
from calendar_sync.integrations.google_calendar.exceptions import (
    CalendarNotFoundError,
    ConnectionNotFoundError,
    GoogleCalendarError,
    GoogleCalendarNotFoundError,
    RefreshTokenInvalidError,
    SyncValidationError,
)
from calendar_sync.integrations.google_calendar.repository import GoogleCalendarRepository
from calendar_sync.models.base import utcnow
from calendar_sync.models.connections import CalendarConnection, VenueCalendar
from calendar_sync.models.sync import SyncedEvent
from calendar_sync.services import event_mapper
from calendar_sync.services.calendar_manager import CalendarManager
from calendar_sync.services.token_manager import TokenManager

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome counters of a sync run."""

    synced: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def merge(self, other: "SyncResult") -> "SyncResult":
        self.synced += other.synced
        self.skipped += other.skipped
        self.failed += other.failed
        self.errors.extend(other.errors)
        return self

    def record_failure(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)


@dataclass
class _PlannedTarget:
    target: SyncTarget
    eligible: bool
    mapping: Optional[SyncedEvent] = None


class _ConnectionClient:
    """
    Obtains a connection's client at most once, only when a call is needed.

    A failure to obtain it is kept for the rest of the run, so the other
    targets of the connection fail without another trip to the token
    endpoint.
    """

    def __init__(self, token_manager: TokenManager, connection_id: uuid.UUID):
        self._token_manager = token_manager
        self._connection_id = connection_id
        self._client: Optional[GoogleCalendarRepository] = None
        self._error: Optional[GoogleCalendarError] = None

    @property
    def healthy(self) -> bool:
        """False once the connection's grant was found to be revoked."""
        return not isinstance(self._error, RefreshTokenInvalidError)

    async def get(self) -> GoogleCalendarRepository:
        if self._error is not None:
            raise self._error
        if self._client is None:
            try:
                self._client = await self._token_manager.get_authenticated_client(self._connection_id)
            except GoogleCalendarError as e:
                self._error = e
                raise
        return self._client

    async def revoked(self, error: RefreshTokenInvalidError) -> None:
        """
        Handle a grant rejected while calling the API.

        The token manager already flagged the connection when the error came
        from its own refresh; here google-auth refreshed mid-call instead.
        """
        if self._error is not None:
            return
        self._error = error
        logger.warning(
            f"Google rejected the grant of connection {self._connection_id} during a call, "
            f"marking as needing re-authorization"
        )
        try:
            await self._token_manager.mark_connection_requires_reauth(self._connection_id, error.message)
        except ConnectionNotFoundError:
            logger.info(f"Connection {self._connection_id} was removed during sync")


class SyncService:
    """Orchestrates event pushes across all connected calendars."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        token_manager: TokenManager,
        calendar_manager: CalendarManager,
        directory: SchedulingDirectory,
        settings: Optional[Settings] = None,
    ):
        self._session_factory = session_factory
        self._token_manager = token_manager
        self._calendar_manager = calendar_manager
        self._directory = directory
        self._settings = settings or get_settings()

    # =========================================================================
    # Public operations
    # =========================================================================

    async def handle_event_change(self, event_id: str, kind: EventChangeKind | str) -> SyncResult:
        """Entry point for mutations emitted by the scheduling domain."""
        kind = EventChangeKind(kind)
        logger.info(f"Event {event_id} changed ({kind.value})")
        if kind == EventChangeKind.DELETED:
            return await self.delete_event(event_id)
        return await self.sync_event(event_id)

    async def sync_event(
        self,
        event_id: str,
        connection_id: Optional[uuid.UUID] = None,
    ) -> SyncResult:
        """
        Push one event to every affected calendar.

        Args:
            event_id: Scheduling event ID
            connection_id: Restrict the sync to one connection (full re-sync)
        """
        plan: dict[uuid.UUID, list[_PlannedTarget]] = {}
        try:
            event = await self._directory.get_event(event_id)
            if event is not None:
                plan = await self._plan_targets(event, connection_id)
        except SyncValidationError as e:
            logger.warning(f"Skipping sync of malformed event {event_id}: {e.message}")
            return SyncResult(skipped=1)
        except Exception as e:
            logger.error(f"Could not resolve sync targets of event {event_id}: {e}", exc_info=True)
            result = SyncResult()
            result.record_failure(f"event {event_id}: {e}")
            return result

        if event is None:
            logger.info(f"Event {event_id} no longer exists, removing synced copies")
            return await self.delete_event(event_id, connection_id=connection_id)

        if not plan:
            return SyncResult()

        semaphore = asyncio.Semaphore(self._settings.sync_max_concurrency)
        results = await asyncio.gather(
            *(
                self._sync_connection(event, conn_id, targets, semaphore)
                for conn_id, targets in plan.items()
            )
        )

        result = SyncResult()
        for partial in results:
            result.merge(partial)

        logger.info(
            f"Synced event {event_id}: {result.synced} synced, "
            f"{result.skipped} unchanged, {result.failed} failed"
        )
        return result

    async def delete_event(
        self,
        event_id: str,
        connection_id: Optional[uuid.UUID] = None,
    ) -> SyncResult:
        """Remove every synced copy of an event and its mappings."""
        stmt = select(SyncedEvent).where(SyncedEvent.event_id == event_id)
        if connection_id is not None:
            stmt = stmt.where(SyncedEvent.connection_id == connection_id)
        try:
            async with self._session_factory() as session:
                mappings = (await session.scalars(stmt)).all()
        except Exception as e:
            logger.error(f"Could not load synced copies of event {event_id}: {e}", exc_info=True)
            result = SyncResult()
            result.record_failure(f"event {event_id}: {e}")
            return result

        if not mappings:
            return SyncResult()

        by_connection: dict[uuid.UUID, list[SyncedEvent]] = defaultdict(list)
        for mapping in mappings:
            by_connection[mapping.connection_id].append(mapping)

        semaphore = asyncio.Semaphore(self._settings.sync_max_concurrency)
        results = await asyncio.gather(
            *(
                self._delete_for_connection(conn_id, rows, semaphore)
                for conn_id, rows in by_connection.items()
            )
        )

        result = SyncResult()
        for partial in results:
            result.merge(partial)
        logger.info(f"Deleted event {event_id}: {result.synced} removed, {result.failed} failed")
        return result

    async def sync_all_events_for_connection(self, connection_id: uuid.UUID) -> SyncResult:
        """
        Full re-sync of the tenant's published events for one connection.

        Raises:
            ConnectionNotFoundError: Unknown connection
        """
        connection = await self._token_manager.get_connection(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Connection {connection_id} not found")

        event_ids = await self._directory.list_published_event_ids(connection.tenant_id)
        logger.info(f"Full sync of {len(event_ids)} events for connection {connection_id}")

        result = SyncResult()
        for event_id in event_ids:
            result.merge(await self.sync_event(event_id, connection_id=connection_id))

        if result.success:
            await self._token_manager.record_sync_success(connection_id)
        else:
            await self._record_connection_error(connection_id, result.errors[0])
        return result

    # =========================================================================
    # Target resolution
    # =========================================================================

    async def _plan_targets(
        self,
        event: SyncableEvent,
        connection_id: Optional[uuid.UUID] = None,
    ) -> dict[uuid.UUID, list[_PlannedTarget]]:
        """
        Resolve the targets of an event, grouped by connection.

        A target is eligible when the connection's preferences and the
        user's role allow the scope. Targets that already hold a mapping
        are included even when not eligible, so the copy can be retracted.
        """
        conn_stmt = select(CalendarConnection).where(
            CalendarConnection.tenant_id == event.tenant_id,
            CalendarConnection.is_active.is_(True),
            CalendarConnection.requires_reauth.is_(False),
        )
        if connection_id is not None:
            conn_stmt = conn_stmt.where(CalendarConnection.id == connection_id)

        async with self._session_factory() as session:
            connections = (await session.scalars(conn_stmt)).all()
            if not connections:
                return {}
            connection_ids = [c.id for c in connections]

            venue_rows = (
                await session.scalars(
                    select(VenueCalendar).where(
                        VenueCalendar.connection_id.in_(connection_ids),
                        VenueCalendar.sync_enabled.is_(True),
                    )
                )
            ).all()
            mappings = (
                await session.scalars(
                    select(SyncedEvent).where(
                        SyncedEvent.event_id == event.id,
                        SyncedEvent.connection_id.in_(connection_ids),
                    )
                )
            ).all()

        admin_ids = await self._directory.list_admin_profile_ids(event.tenant_id)
        mapping_index = {(m.connection_id, m.scope_key): m for m in mappings}

        venues_by_connection: dict[uuid.UUID, list[str]] = defaultdict(list)
        for row in venue_rows:
            venues_by_connection[row.connection_id].append(row.venue_id)

        plan: dict[uuid.UUID, list[_PlannedTarget]] = {}
        for connection in connections:
            is_admin = connection.user_id in admin_ids
            candidates: list[tuple[SyncTarget, bool]] = []

            if connection.sync_organization_calendar:
                candidates.append(
                    (SyncTarget(connection.id, connection.user_id, CalendarScope.ORGANIZATION), is_admin)
                )

            enabled_venues = venues_by_connection.get(connection.id, [])
            if enabled_venues:
                member_venues: set[str] = set()
                if not is_admin and event.venue_ids & set(enabled_venues):
                    member_venues = await self._directory.list_member_venue_ids(connection.user_id)
                for venue_id in enabled_venues:
                    candidates.append(
                        (
                            SyncTarget(connection.id, connection.user_id, CalendarScope.VENUE, venue_id),
                            is_admin or venue_id in member_venues,
                        )
                    )

            if connection.sync_personal_calendar:
                candidates.append(
                    (SyncTarget(connection.id, connection.user_id, CalendarScope.PERSONAL), True)
                )

            targets = []
            for target, eligible in candidates:
                mapping = mapping_index.get((connection.id, target.scope_key))
                if eligible or mapping is not None:
                    targets.append(_PlannedTarget(target, eligible, mapping))
            if targets:
                plan[connection.id] = targets

        return plan

    def _should_sync(self, event: SyncableEvent, target: SyncTarget) -> bool:
        if target.scope == CalendarScope.ORGANIZATION:
            return event_mapper.should_sync_to_organization_calendar(event)
        if target.scope == CalendarScope.VENUE:
            return event_mapper.should_sync_to_venue_calendar(event, target.venue_id)
        return event_mapper.should_sync_to_personal_calendar(event, target.user_id)

    # =========================================================================
    # Per-connection work
    # =========================================================================

    async def _sync_connection(
        self,
        event: SyncableEvent,
        connection_id: uuid.UUID,
        targets: Sequence[_PlannedTarget],
        semaphore: asyncio.Semaphore,
    ) -> SyncResult:
        result = SyncResult()
        client = _ConnectionClient(self._token_manager, connection_id)

        async with semaphore:
            for planned in targets:
                target = planned.target
                try:
                    outcome = await self._sync_target(event, planned, client)
                except RefreshTokenInvalidError as e:
                    await client.revoked(e)
                    result.record_failure(f"{target}: {e.message}")
                except CalendarNotFoundError as e:
                    result.record_failure(f"{target}: {e.message}")
                    await self._calendar_manager.invalidate_calendar(connection_id, target)
                except GoogleCalendarError as e:
                    logger.warning(f"Failed to sync event {event.id} to {target}: {e.message}")
                    result.record_failure(f"{target}: {e.message}")
                except Exception as e:
                    logger.error(f"Unexpected error syncing event {event.id} to {target}: {e}", exc_info=True)
                    result.record_failure(f"{target}: {e}")
                else:
                    if outcome:
                        result.synced += 1
                    else:
                        result.skipped += 1

        if result.failed and client.healthy:
            await self._record_connection_error(connection_id, result.errors[-1])
        return result

    async def _sync_target(
        self,
        event: SyncableEvent,
        planned: _PlannedTarget,
        client: _ConnectionClient,
    ) -> bool:
        """
        Bring one target in line with the event.

        Returns:
            True if Google was changed, False if nothing needed doing
        """
        target = planned.target
        mapping = planned.mapping

        if not (planned.eligible and self._should_sync(event, target)):
            if mapping is None:
                return False
            api = await client.get()
            await api.delete_event(mapping.provider_calendar_id, mapping.provider_event_id)
            await self._delete_mapping(mapping.id)
            logger.info(f"Retracted event {event.id} from {target}")
            return True

        assignments = None
        if target.scope == CalendarScope.PERSONAL:
            assignments = event_mapper.personal_assignments_for(event, target.user_id)

        event_hash = event_mapper.generate_event_hash(event, assignments)
        if mapping is not None and mapping.event_hash == event_hash:
            logger.debug(f"Event {event.id} unchanged for {target}")
            return False

        api = await client.get()
        body = event_mapper.to_provider_request_body(
            event,
            target.scope,
            assignments,
            timezone_name=self._settings.timezone,
            event_url=event_mapper.build_event_link(self._settings.app_base_url, event.id),
        )

        if mapping is None:
            calendar_id = await self._calendar_manager.ensure_calendar(
                target.connection_id, target, client=api
            )
            provider_event_id = await api.insert_event(calendar_id, body)
            logger.info(f"Inserted event {event.id} into {target} as {provider_event_id}")
        else:
            calendar_id = mapping.provider_calendar_id
            try:
                provider_event_id = await api.update_event(calendar_id, mapping.provider_event_id, body)
                logger.info(f"Updated event {event.id} in {target}")
            except CalendarNotFoundError:
                raise
            except GoogleCalendarNotFoundError:
                logger.info(
                    f"Event {mapping.provider_event_id} missing from {target}, recreating"
                )
                provider_event_id = await api.insert_event(calendar_id, body)

        await self._save_mapping(target, event.id, calendar_id, provider_event_id, event_hash)
        return True

    async def _delete_for_connection(
        self,
        connection_id: uuid.UUID,
        mappings: Sequence[SyncedEvent],
        semaphore: asyncio.Semaphore,
    ) -> SyncResult:
        result = SyncResult()
        client = _ConnectionClient(self._token_manager, connection_id)

        async with semaphore:
            for mapping in mappings:
                label = f"{connection_id}/{mapping.scope_key}"
                try:
                    api = await client.get()
                    await api.delete_event(mapping.provider_calendar_id, mapping.provider_event_id)
                    await self._delete_mapping(mapping.id)
                    result.synced += 1
                except RefreshTokenInvalidError as e:
                    await client.revoked(e)
                    result.record_failure(f"{label}: {e.message}")
                except GoogleCalendarError as e:
                    logger.warning(f"Failed to delete event {mapping.event_id} from {label}: {e.message}")
                    result.record_failure(f"{label}: {e.message}")
                except Exception as e:
                    logger.error(f"Unexpected error deleting event {mapping.event_id} from {label}: {e}", exc_info=True)
                    result.record_failure(f"{label}: {e}")

        return result

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _save_mapping(
        self,
        target: SyncTarget,
        event_id: str,
        calendar_id: str,
        provider_event_id: str,
        event_hash: str,
    ) -> None:
        """Upsert the mapping of (connection, event, scope)."""
        stmt = select(SyncedEvent).where(
            SyncedEvent.connection_id == target.connection_id,
            SyncedEvent.event_id == event_id,
            SyncedEvent.scope_key == target.scope_key,
        )
        async with self._session_factory() as session:
            mapping = (await session.execute(stmt)).scalar_one_or_none()
            if mapping is None:
                session.add(
                    SyncedEvent(
                        connection_id=target.connection_id,
                        event_id=event_id,
                        scope=target.scope.value,
                        venue_id=target.venue_id,
                        scope_key=target.scope_key,
                        provider_calendar_id=calendar_id,
                        provider_event_id=provider_event_id,
                        event_hash=event_hash,
                        last_synced_at=utcnow(),
                    )
                )
            else:
                mapping.provider_calendar_id = calendar_id
                mapping.provider_event_id = provider_event_id
                mapping.event_hash = event_hash
                mapping.last_synced_at = utcnow()
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.warning(
                    f"Concurrent sync stored a mapping for event {event_id} in {target} first; "
                    f"Google event {provider_event_id} is a duplicate"
                )

    async def _delete_mapping(self, mapping_id: uuid.UUID) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(SyncedEvent).where(SyncedEvent.id == mapping_id))
            await session.commit()

    async def _record_connection_error(self, connection_id: uuid.UUID, message: str) -> None:
        try:
            await self._token_manager.record_sync_error(connection_id, message)
        except ConnectionNotFoundError:
            logger.info(f"Connection {connection_id} was removed during sync")
