"""
Page-scan orchestration.

One pass drives a single fetched page through

    Fetched -> Parsed -> PluginsRunning -> Aggregated -> Delivered

ending in Failed instead when the markup cannot be parsed or the pass is
cancelled. Plugins run one after another in registry order; a plugin fault
is recorded and the pass continues. Passes for different pages are
independent and may run concurrently.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union
from uuid import uuid4

import structlog

from ..catalog import MarkCatalog
from ..config.config import ScanConfig
from ..document import DocumentModel
from ..exceptions import FetchError, ParseError, PluginError, ScanCancelledError
from ..observability import histogram, increment
from ..plugins.registry import PluginRegistry
from ..protocols import (
    MarkUsage,
    MetricPlugin,
    PageContext,
    PageFetcher,
    PageScanResult,
    ResultStore,
    ScanOutcome,
    ScanState,
)

logger = structlog.get_logger(__name__)

_TRANSITIONS: Dict[ScanState, FrozenSet[ScanState]] = {
    ScanState.FETCHED: frozenset({ScanState.PARSED, ScanState.FAILED}),
    ScanState.PARSED: frozenset({ScanState.PLUGINS_RUNNING, ScanState.FAILED}),
    ScanState.PLUGINS_RUNNING: frozenset({ScanState.AGGREGATED, ScanState.FAILED}),
    ScanState.AGGREGATED: frozenset({ScanState.DELIVERED, ScanState.FAILED}),
}


@dataclass
class ScanPass:
    """State of one page moving through the pipeline."""

    url: str
    raw: Union[bytes, str]
    depth: int = 0
    scan_id: str = field(default_factory=lambda: str(uuid4()))
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    state: ScanState = ScanState.FETCHED
    history: List[ScanState] = field(default_factory=lambda: [ScanState.FETCHED])

    def transition(self, new_state: ScanState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise RuntimeError(f"Illegal scan state transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def cancel(self) -> None:
        """Signal the pass to abandon its work."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def context(self) -> PageContext:
        return PageContext(url=self.url, depth=self.depth, scan_id=self.scan_id, cancel_event=self.cancel_event)


class ScanOrchestrator:
    """
    Runs registered metric plugins against fetched pages and delivers the results.

    Args:
        registry: Supplies the ordered plugin snapshot for every pass
        store: Persistence collaborator; results are only kept in memory when None
        config: Page concurrency settings
        catalog: Mark catalog; defaults to the registry's catalog
    """

    def __init__(
        self,
        registry: PluginRegistry,
        store: Optional[ResultStore] = None,
        *,
        config: Optional[ScanConfig] = None,
        catalog: Optional[MarkCatalog] = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.config = config or ScanConfig()
        self.catalog = catalog or registry.catalog
        self.logger = logger.bind(component="ScanOrchestrator")

    def create_pass(
        self,
        url: str,
        raw: Union[bytes, str],
        *,
        depth: int = 0,
        scan_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ScanPass:
        scan_pass = ScanPass(url=url, raw=raw, depth=depth)
        if scan_id is not None:
            scan_pass.scan_id = scan_id
        if cancel_event is not None:
            scan_pass.cancel_event = cancel_event
        return scan_pass

    async def scan_page(
        self,
        url: str,
        raw: Union[bytes, str],
        *,
        depth: int = 0,
        scan_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ScanOutcome:
        """Create and run a pass for one already-fetched page."""
        scan_pass = self.create_pass(url, raw, depth=depth, scan_id=scan_id, cancel_event=cancel_event)
        return await self.run_pass(scan_pass)

    async def run_pass(self, scan_pass: ScanPass) -> ScanOutcome:
        """
        Drive one pass to a terminal state.

        Returns:
            ScanOutcome carrying the delivered result, or the error that failed the pass
        """
        if scan_pass.state is not ScanState.FETCHED:
            raise RuntimeError(f"Pass for {scan_pass.url} already ran (state {scan_pass.state.value})")

        start_time = time.monotonic()
        with structlog.contextvars.bound_contextvars(scan_id=scan_pass.scan_id, page_url=scan_pass.url):
            try:
                outcome = await self._execute(scan_pass)
            except ParseError as e:
                outcome = self._fail(scan_pass, e)
                self.logger.warning("Page could not be parsed", url=scan_pass.url, error=str(e))
            except ScanCancelledError as e:
                outcome = self._fail(scan_pass, e)
                self.logger.info("Page scan cancelled", url=scan_pass.url)
            except asyncio.CancelledError:
                self._fail(scan_pass, ScanCancelledError("Task cancelled"))
                raise
            finally:
                histogram("scan_pass_duration_seconds", time.monotonic() - start_time)
                increment("scan_passes_total", labels={"state": scan_pass.state.value})

        return outcome

    async def _execute(self, scan_pass: ScanPass) -> ScanOutcome:
        self._raise_if_cancelled(scan_pass)
        document = DocumentModel.parse(scan_pass.raw)
        scan_pass.transition(ScanState.PARSED)

        plugins = self.registry.get_active_plugins()
        scan_pass.transition(ScanState.PLUGINS_RUNNING)
        self.logger.info("Running plugins", url=scan_pass.url, plugins=[plugin.name for plugin in plugins])

        context = scan_pass.context()
        outputs: List[Tuple[MetricPlugin, Sequence[MarkUsage]]] = []
        errors: List[PluginError] = []

        for plugin in plugins:
            self._raise_if_cancelled(scan_pass)
            try:
                usages = await self._run_plugin(plugin, context, document, scan_pass.cancel_event)
            except ScanCancelledError:
                raise
            except PluginError as e:
                errors.append(e)
                self._log_plugin_error(e)
            except Exception as e:
                error = PluginError(plugin.name, scan_pass.url, e)
                errors.append(error)
                self._log_plugin_error(error)
            else:
                outputs.append((plugin, usages))

        self._raise_if_cancelled(scan_pass)
        result = self._aggregate(scan_pass, outputs, errors, title=document.title())
        scan_pass.transition(ScanState.AGGREGATED)

        self._raise_if_cancelled(scan_pass)
        await self._deliver(result)
        scan_pass.transition(ScanState.DELIVERED)

        self.logger.info(
            "Page scan delivered",
            url=scan_pass.url,
            marks=len(result.usages),
            plugin_errors=len(result.plugin_errors),
            warnings=len(result.warnings),
        )
        return ScanOutcome(url=scan_pass.url, state=scan_pass.state, result=result)

    async def _run_plugin(
        self,
        plugin: MetricPlugin,
        context: PageContext,
        document: DocumentModel,
        cancel_event: asyncio.Event,
    ) -> Sequence[MarkUsage]:
        """Run one plugin, abandoning it if the pass is cancelled meanwhile."""
        task = asyncio.create_task(plugin.run(context, document))
        waiter = asyncio.create_task(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task not in done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise ScanCancelledError(f"Cancelled while running plugin '{plugin.name}'")

        # Cancelled from inside the plugin
        if task.cancelled():
            raise PluginError(plugin.name, context.url, asyncio.CancelledError())

        usages = list(task.result() or ())
        for usage in usages:
            if not isinstance(usage, MarkUsage):
                raise TypeError(f"Plugin '{plugin.name}' returned {type(usage).__name__}, expected MarkUsage")
        return usages

    def _aggregate(
        self,
        scan_pass: ScanPass,
        outputs: Sequence[Tuple[MetricPlugin, Sequence[MarkUsage]]],
        errors: List[PluginError],
        *,
        title: Optional[str],
    ) -> PageScanResult:
        """Bind catalog marks and merge usages in plugin, then emission, order."""
        result = PageScanResult(url=scan_pass.url, scan_id=scan_pass.scan_id, title=title, plugin_errors=errors)

        for plugin, usages in outputs:
            for usage in usages:
                if usage.count == 0:
                    continue
                name, description = plugin.marks.get(usage.machine_name, (usage.machine_name, ""))
                mark = self.catalog.get_mark(usage.machine_name, name=name, description=description)
                result.usages.append(replace(usage, mark=mark))

        return result

    async def _deliver(self, result: PageScanResult) -> None:
        if self.store is None:
            return
        try:
            await self.store.save(result)
        except Exception as e:
            # Storage is the collaborator's concern; the pass still completes
            self.logger.error(
                "Persisting scan result failed",
                url=result.url,
                error=str(e),
                error_type=type(e).__name__,
            )
            result.warnings.append(f"Persistence failed: {type(e).__name__}: {e}")

    def _fail(self, scan_pass: ScanPass, error: BaseException) -> ScanOutcome:
        if not scan_pass.state.is_terminal:
            scan_pass.transition(ScanState.FAILED)
        return ScanOutcome(url=scan_pass.url, state=scan_pass.state, error=error)

    def _log_plugin_error(self, error: PluginError) -> None:
        increment("plugin_failures_total", labels={"plugin": error.plugin_name})
        self.logger.error(
            "Plugin failed",
            event_type="plugin_failed",
            plugin=error.plugin_name,
            url=error.url,
            error=str(error.cause or error),
            error_type=type(error.cause or error).__name__,
        )

    @staticmethod
    def _raise_if_cancelled(scan_pass: ScanPass) -> None:
        if scan_pass.cancelled:
            raise ScanCancelledError(f"Scan of {scan_pass.url} cancelled")

    # ------------------------------------------------------------------
    # Site-level fan-out
    # ------------------------------------------------------------------

    async def scan_site(
        self,
        pages: Iterable[Tuple[str, Union[bytes, str]]],
        *,
        scan_id: Optional[str] = None,
        depth: int = 0,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[ScanOutcome]:
        """
        Scan many already-fetched pages concurrently.

        A failed page never affects its siblings. Outcomes are returned in
        input order.
        """
        passes = [
            self.create_pass(url, raw, depth=depth, scan_id=scan_id, cancel_event=cancel_event) for url, raw in pages
        ]
        semaphore = asyncio.Semaphore(self.config.max_concurrent_pages)

        async def guarded(scan_pass: ScanPass) -> ScanOutcome:
            async with semaphore:
                return await self.run_pass(scan_pass)

        gathered = await asyncio.gather(*(guarded(scan_pass) for scan_pass in passes), return_exceptions=True)

        outcomes: List[ScanOutcome] = []
        for scan_pass, item in zip(passes, gathered):
            if isinstance(item, ScanOutcome):
                outcomes.append(item)
                continue
            if isinstance(item, asyncio.CancelledError):
                raise item
            self.logger.error("Page scan crashed", url=scan_pass.url, error=str(item), error_type=type(item).__name__)
            outcomes.append(self._fail(scan_pass, item))

        self.logger.info(
            "Site scan finished",
            pages=len(outcomes),
            delivered=sum(1 for outcome in outcomes if outcome.delivered),
        )
        return outcomes

    async def scan_urls(
        self,
        fetcher: PageFetcher,
        urls: Sequence[str],
        *,
        scan_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[ScanOutcome]:
        """Fetch pages through the fetch collaborator, then scan the ones that arrived."""
        scan_id = scan_id or str(uuid4())
        semaphore = asyncio.Semaphore(self.config.max_concurrent_pages)

        async def fetch_one(url: str) -> Union[bytes, FetchError]:
            async with semaphore:
                try:
                    return await fetcher.fetch(url)
                except FetchError as e:
                    self.logger.warning("Page fetch failed", url=url, error=e.reason, status=e.status)
                    return e

        bodies = await asyncio.gather(*(fetch_one(url) for url in urls))

        fetched = [(url, body) for url, body in zip(urls, bodies) if not isinstance(body, FetchError)]
        scanned = iter(await self.scan_site(fetched, scan_id=scan_id, cancel_event=cancel_event))

        outcomes: List[ScanOutcome] = []
        for url, body in zip(urls, bodies):
            if isinstance(body, FetchError):
                outcomes.append(ScanOutcome(url=url, state=ScanState.FAILED, error=body))
            else:
                outcomes.append(next(scanned))
        return outcomes
