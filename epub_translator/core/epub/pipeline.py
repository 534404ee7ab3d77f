"""
Per-document translation pipeline.

One document goes through:

    EXTRACTING -> GROUPING -> DISPATCHING -> RECONCILING -> RETRYING_UNRESOLVED
    -> REWRITING -> DONE

Batches are dispatched concurrently through the shared gate, cache and retry
controller, and each batch is reconciled as soon as its response arrives.
Batch failures never fail the document: their fragments keep the source
text. Only extraction and serialization errors lead to FAILED. Setting the
cancellation token stops new dispatches and retries; requests already in
flight finish, and the document is rewritten with what was obtained
(CANCELLED).

All run-wide mutable state (cancellation, progress counters, statistics,
authentication failure) lives in a ``PipelineContext`` built for the run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from epub_translator.config import TranslationConfig
from epub_translator.core.concurrency.cache import TranslationCache
from epub_translator.core.concurrency.gate import ConcurrencyGate
from epub_translator.core.concurrency.retry import RetryConfig, with_retry
from epub_translator.core.llm.base import LLMProvider, LLMResponse
from epub_translator.core.llm.exceptions import LLMError, LLMAuthenticationError
from .events import Event, EventBus, EventType
from .exceptions import DocumentError
from .extractor import FragmentExtractor
from .grouper import group_fragments
from .markup import ParsedDocument, parse_document
from .models import Batch, Fragment, is_translatable_text
from .reconciler import ResponseReconciler
from .rewriter import rewrite_document

logger = logging.getLogger(__name__)


class DocumentState(Enum):
    """States of one document's pipeline run."""
    EXTRACTING = "extracting"
    GROUPING = "grouping"
    DISPATCHING = "dispatching"
    RECONCILING = "reconciling"
    RETRYING_UNRESOLVED = "retrying_unresolved"
    REWRITING = "rewriting"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancellationToken:
    """Shared cancellation flag, set from outside the pipeline."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by user") -> None:
        if not self._event.is_set():
            self._event.set()
            self.reason = reason
            logger.info(f"Cancellation requested: {reason}")

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class DispatchAbortedError(LLMError):
    """A queued request was dropped because the run is stopping."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


@dataclass
class PipelineStats:
    """Counters aggregated over one run."""
    documents_translated: int = 0
    documents_failed: int = 0
    documents_cancelled: int = 0
    fragments_total: int = 0
    fragments_translated: int = 0
    fragments_unresolved: int = 0
    batches_total: int = 0
    batches_failed: int = 0
    backend_calls: int = 0
    cache_hits: int = 0
    single_retries: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def record_usage(self, response: LLMResponse) -> None:
        self.prompt_tokens += response.prompt_tokens
        self.completion_tokens += response.completion_tokens


@dataclass
class PipelineContext:
    """Everything one run's pipeline stages share.

    Built fresh for each run; the cache and gate are shared by all documents
    of that run only.
    """
    source_lang: str
    target_lang: str
    provider: LLMProvider
    gate: ConcurrencyGate = field(default_factory=ConcurrencyGate)
    cache: TranslationCache = field(default_factory=TranslationCache)
    reconciler: ResponseReconciler = field(default_factory=ResponseReconciler)
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    single_retry_config: RetryConfig = field(default_factory=lambda: RetryConfig(max_attempts=1))
    batch_min_chars: int = 300
    batch_max_chars: int = 500
    batch_max_fragments: int = 8
    batch_timeout: float = 120
    single_timeout: float = 60
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    log_callback: Optional[Callable[[str, str], None]] = None
    progress_callback: Optional[Callable[[float], None]] = None
    event_bus: Optional[EventBus] = None
    sleep: Callable = asyncio.sleep
    total_chars: int = 0
    precounted: bool = False
    processed_chars: int = 0
    last_progress: float = 0.0
    auth_error: Optional[LLMAuthenticationError] = None
    stats: PipelineStats = field(default_factory=PipelineStats)

    @classmethod
    def from_config(cls, config: TranslationConfig, provider: LLMProvider, **kwargs) -> 'PipelineContext':
        """Build a context from run configuration."""
        return cls(
            source_lang=config.source_language,
            target_lang=config.target_language,
            provider=provider,
            gate=ConcurrencyGate(config.max_concurrent),
            cache=TranslationCache(config.cache_size),
            retry_config=RetryConfig(
                max_attempts=config.max_attempts,
                initial_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
            ),
            batch_min_chars=config.batch_min_chars,
            batch_max_chars=config.batch_max_chars,
            batch_max_fragments=config.batch_max_fragments,
            batch_timeout=config.timeout,
            single_timeout=config.single_timeout,
            **kwargs
        )

    @property
    def should_stop(self) -> bool:
        """No new dispatch once cancelled or once the credential is known to be bad."""
        return self.cancellation.is_cancelled or self.auth_error is not None

    @property
    def stop_reason(self) -> str:
        if self.auth_error is not None:
            return "authentication failed"
        return self.cancellation.reason or "cancelled"

    def log(self, key: str, message: str) -> None:
        if self.log_callback:
            self.log_callback(key, message)

    def emit_event(self, event_type: EventType, data: dict) -> None:
        if self.event_bus:
            self.event_bus.publish(Event(type=event_type, data=data, source="pipeline"))

    def add_progress(self, chars: int) -> None:
        """Count processed characters and report a non-decreasing percentage."""
        self.processed_chars += chars
        if self.total_chars <= 0:
            return
        percentage = min(100.0, self.processed_chars * 100.0 / self.total_chars)
        if percentage <= self.last_progress:
            return
        self.last_progress = percentage
        if self.progress_callback:
            self.progress_callback(percentage)
        self.emit_event(EventType.PROGRESS, {"percentage": percentage})


@dataclass
class DocumentResult:
    """Outcome of one document's pipeline run."""
    name: str
    state: DocumentState
    markup: str
    fragment_count: int = 0
    translated_count: int = 0
    unresolved_count: int = 0
    error: Optional[Exception] = None


class DocumentPipeline:
    """Runs extraction, batching, dispatch, reconciliation and rewriting for documents."""

    def __init__(self, context: PipelineContext):
        self.context = context
        self.extractor = FragmentExtractor(log_callback=context.log_callback)

    async def translate_document(self, markup: str, name: str = "document") -> DocumentResult:
        """Translate one markup document.

        Never raises for batch-level failures; structural errors end in a
        FAILED result carrying the original markup and the error.
        """
        ctx = self.context
        state = self._enter(name, DocumentState.EXTRACTING)
        ctx.emit_event(EventType.DOCUMENT_STARTED, {"document": name})

        try:
            doc = parse_document(markup, name=name)
            fragments = self.extractor.extract(doc)
        except DocumentError as e:
            return self._failed(name, markup, state, e)

        if not fragments:
            logger.debug(f"{name}: no translatable text")
            ctx.emit_event(EventType.DOCUMENT_COMPLETED, {"document": name, "fragments": 0})
            return DocumentResult(name=name, state=DocumentState.DONE, markup=markup)

        ctx.stats.fragments_total += len(fragments)
        sendable = self._sendable(fragments)
        if not ctx.precounted:
            ctx.total_chars += sum(len(f.original_text) for f in sendable)

        self._enter(name, DocumentState.GROUPING)
        batches = group_fragments(sendable, ctx.batch_min_chars, ctx.batch_max_chars, ctx.batch_max_fragments)
        ctx.stats.batches_total += len(batches)
        ctx.log("document_batches",
                f"{name}: {len(fragments)} fragments in {len(batches)} batches")

        if ctx.should_stop:
            self._mark_skipped(fragments, ctx.stop_reason)
            return self._finish(name, markup, doc, fragments, DocumentState.CANCELLED)

        # Batches reconcile as they complete; RECONCILING overlaps DISPATCHING
        self._enter(name, DocumentState.DISPATCHING)
        await asyncio.gather(*(self._dispatch_batch(batch, name) for batch in batches))

        if ctx.should_stop:
            return self._finish(name, markup, doc, fragments, DocumentState.CANCELLED)

        self._enter(name, DocumentState.RETRYING_UNRESOLVED)
        await self._retry_unresolved(fragments, name)

        final_state = DocumentState.CANCELLED if ctx.should_stop else DocumentState.DONE
        return self._finish(name, markup, doc, fragments, final_state)

    def _finish(self, name: str, markup: str, doc: ParsedDocument,
                      fragments: List[Fragment], final_state: DocumentState) -> DocumentResult:
        """REWRITING: write what was obtained, whether or not the run was cancelled."""
        ctx = self.context
        self._enter(name, DocumentState.REWRITING)
        try:
            output = rewrite_document(doc, fragments)
        except DocumentError as e:
            return self._failed(name, markup, DocumentState.REWRITING, e)

        translated = sum(1 for f in fragments if not f.needs_translation)
        unresolved = [f for f in fragments if f.needs_translation and is_translatable_text(f.original_text)]
        ctx.stats.fragments_translated += translated
        ctx.stats.fragments_unresolved += len(unresolved)

        if unresolved:
            preview = ", ".join(f"#{f.id} ({f.skip_reason or 'unchanged'})" for f in unresolved[:5])
            more = f" and {len(unresolved) - 5} more" if len(unresolved) > 5 else ""
            ctx.log("document_unresolved",
                    f"{name}: {len(unresolved)} fragments kept in source language: {preview}{more}")

        if final_state == DocumentState.CANCELLED:
            ctx.stats.documents_cancelled += 1
            ctx.emit_event(EventType.DOCUMENT_CANCELLED, {"document": name, "reason": ctx.stop_reason})
        else:
            ctx.stats.documents_translated += 1
            ctx.emit_event(EventType.DOCUMENT_COMPLETED, {
                "document": name, "fragments": len(fragments),
                "translated": translated, "unresolved": len(unresolved),
            })

        return DocumentResult(
            name=name, state=final_state, markup=output,
            fragment_count=len(fragments), translated_count=translated,
            unresolved_count=len(unresolved),
        )

    @staticmethod
    def _enter(name: str, state: DocumentState) -> DocumentState:
        logger.debug(f"{name}: {state.value}")
        return state

    def _failed(self, name: str, markup: str, state: DocumentState, error: DocumentError) -> DocumentResult:
        ctx = self.context
        ctx.stats.documents_failed += 1
        logger.error(f"{name}: {state.value} failed: {error}")
        ctx.log("document_error", f"{name}: {state.value} failed, keeping original: {error}")
        ctx.emit_event(EventType.DOCUMENT_FAILED, {"document": name, "stage": state.value, "error": str(error)})
        return DocumentResult(name=name, state=DocumentState.FAILED, markup=markup, error=error)

    @staticmethod
    def _sendable(fragments: List[Fragment]) -> List[Fragment]:
        """Fragments with letters in them; the others are kept as they are, never sent."""
        sendable = []
        for fragment in fragments:
            if is_translatable_text(fragment.original_text):
                sendable.append(fragment)
            else:
                fragment.skip_reason = "skipped: only digits or punctuation"
        return sendable

    @staticmethod
    def _mark_skipped(fragments: List[Fragment], reason: str) -> None:
        for fragment in fragments:
            if fragment.translated_text is None:
                fragment.skip_reason = f"skipped: {reason}"

    # === Batch dispatch ===

    async def _dispatch_batch(self, batch: Batch, name: str) -> None:
        ctx = self.context
        text = batch.combined_text
        chars = sum(len(f.original_text) for f in batch.fragments)

        if ctx.should_stop:
            self._mark_skipped(batch.fragments, ctx.stop_reason)
            return

        if not text.strip():
            self._mark_skipped(batch.fragments, "empty text")
            ctx.add_progress(chars)
            return
        if not is_translatable_text(text):
            self._mark_skipped(batch.fragments, "only digits or punctuation")
            ctx.add_progress(chars)
            return

        cached = ctx.cache.get(text, ctx.source_lang, ctx.target_lang)
        if cached is not None:
            ctx.stats.cache_hits += 1
            ctx.emit_event(EventType.BATCH_CACHE_HIT, {"document": name, "batch": batch.index})
            self._assign(batch, cached, name)
            ctx.add_progress(chars)
            return

        async def attempt() -> LLMResponse:
            return await ctx.gate.run(self._call_batch, batch)

        result = await with_retry(
            attempt, ctx.retry_config,
            operation_id=f"{name} batch {batch.index}",
            sleep=ctx.sleep,
        )

        if result.is_ok():
            response = result.unwrap()
            ctx.stats.record_usage(response)
            cleaned = ctx.reconciler.clean(response.content)
            ctx.cache.put(text, ctx.source_lang, ctx.target_lang, cleaned)
            self._assign(batch, cleaned, name)
            ctx.emit_event(EventType.BATCH_TRANSLATED, {
                "document": name, "batch": batch.index, "fragments": batch.expected_count,
            })
        else:
            self._record_failure(batch.fragments, result.error, name, f"batch {batch.index}")
            ctx.stats.batches_failed += 1
            ctx.emit_event(EventType.BATCH_FAILED, {
                "document": name, "batch": batch.index, "error": str(result.error),
            })

        ctx.add_progress(chars)

    async def _call_batch(self, batch: Batch) -> LLMResponse:
        ctx = self.context
        # Checked after the gate admits us: waiting in the queue is not dispatch
        if ctx.should_stop:
            raise DispatchAbortedError(ctx.stop_reason)
        ctx.stats.backend_calls += 1
        return await ctx.provider.translate_batch(
            batch.combined_text, ctx.source_lang, ctx.target_lang,
            batch.expected_count, timeout=ctx.batch_timeout,
        )

    def _assign(self, batch: Batch, cleaned: str, name: str) -> None:
        """Positional assignment of reconciled segments to the batch's fragments."""
        result = self.context.reconciler.reconcile(cleaned, batch.expected_count, already_clean=True)
        for fragment, segment in zip(batch.fragments, result.segments):
            if segment is None:
                fragment.translated_text = None
                fragment.skip_reason = (
                    f"insufficient segments returned ({result.returned_count}/{result.expected_count})"
                )
            else:
                fragment.translated_text = segment
                fragment.skip_reason = None

        if result.shortfall:
            self.context.log(
                "batch_unresolved",
                f"{name} batch {batch.index}: model returned {result.returned_count} of "
                f"{result.expected_count} segments, {result.shortfall} fragments left for retry"
            )

    def _record_failure(self, fragments: List[Fragment], error: Exception, name: str, what: str) -> None:
        ctx = self.context
        if isinstance(error, LLMAuthenticationError) and ctx.auth_error is None:
            ctx.auth_error = error
            logger.error(f"Authentication failed, no further requests will be sent: {error.message}")
            ctx.log("auth_error", f"Authentication failed, stopping: {error.message}")

        message = error.message if isinstance(error, LLMError) else str(error)
        if isinstance(error, DispatchAbortedError):
            self._mark_skipped(fragments, message)
            return
        for fragment in fragments:
            fragment.skip_reason = f"API translation failed: {message}"
        logger.warning(f"{name} {what} failed: {type(error).__name__}: {message}")
        ctx.log("batch_failed", f"{name} {what} failed: {message}")

    # === Unresolved-fragment pass ===

    async def _retry_unresolved(self, fragments: List[Fragment], name: str) -> None:
        """One single-fragment request for each fragment still missing a translation."""
        pending = [f for f in fragments if f.needs_translation and is_translatable_text(f.original_text)]
        if not pending:
            return
        self.context.log("retry_unresolved", f"{name}: retrying {len(pending)} fragments one by one")
        await asyncio.gather(*(self._retry_fragment(f, name) for f in pending))

    async def _retry_fragment(self, fragment: Fragment, name: str) -> None:
        ctx = self.context
        if ctx.should_stop:
            return

        async def attempt() -> LLMResponse:
            return await ctx.gate.run(self._call_single, fragment)

        result = await with_retry(
            attempt, ctx.single_retry_config,
            operation_id=f"{name} fragment {fragment.id}",
            sleep=ctx.sleep,
        )
        ctx.stats.single_retries += 1
        ctx.emit_event(EventType.FRAGMENT_RETRIED, {
            "document": name, "fragment": fragment.id, "success": result.is_ok(),
        })

        if result.is_err():
            self._record_failure([fragment], result.error, name, f"fragment {fragment.id}")
            return

        response = result.unwrap()
        ctx.stats.record_usage(response)
        cleaned = ctx.reconciler.clean(response.content)
        if cleaned:
            fragment.translated_text = cleaned
            fragment.skip_reason = None

    async def _call_single(self, fragment: Fragment) -> LLMResponse:
        ctx = self.context
        if ctx.should_stop:
            raise DispatchAbortedError(ctx.stop_reason)
        ctx.stats.backend_calls += 1
        return await ctx.provider.translate_single(
            fragment.original_text, ctx.source_lang, ctx.target_lang, timeout=ctx.single_timeout,
        )


def count_translatable_chars(markup: str, name: str = "document") -> int:
    """Characters the pipeline would send for ``markup``; 0 when it cannot be parsed."""
    try:
        doc = parse_document(markup, name=name)
    except DocumentError:
        return 0
    return sum(len(f.original_text) for f in FragmentExtractor().extract(doc)
               if is_translatable_text(f.original_text))
