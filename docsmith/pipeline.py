"""
Conversion pipeline.

A ``ConversionPipeline`` is built once at startup from an immutable
``FormatRegistry`` and a table of ``ConversionRoute`` entries. Each request
then moves through:

    received -> sniffed -> staged -> converted -> normalized -> tidied -> sent -> cleaned

Client errors end the run in ``rejected`` and server errors in ``failed``.
Once a workspace has been allocated its cleanup is registered with the
request's finalizers, so ``cleaned`` is reached whatever happens next.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple

from .config import IMAGE_CONTENT_TYPES, PDF_CONTENT_TYPES, RTF_CONTENT_TYPES, Settings
from .converters import (
    ExternalConverter,
    PdfToTextConverter,
    TesseractConverter,
    UnRTFConverter,
)
from .lifecycle import RequestFinalizers
from .normalize import OutputNormalizer
from .tidy import DEFAULT_LANGUAGE, HtmlTidier, validate_language
from .utils.error_handling import ClientInputError, PayloadTooLargeError, UnsupportedMediaTypeError
from .utils.logging_config import get_logger
from .utils.mime_detector import MimeTypeDetector, declared_type_accepted, normalize_mime_type
from .utils.negotiation import ensure_acceptable
from .workspace import Workspace, WorkspaceManager

logger = get_logger(__name__)


class PipelineStage(str, Enum):
    RECEIVED = "received"
    SNIFFED = "sniffed"
    STAGED = "staged"
    CONVERTED = "converted"
    NORMALIZED = "normalized"
    TIDIED = "tidied"
    SENT = "sent"
    CLEANED = "cleaned"
    REJECTED = "rejected"
    FAILED = "failed"


TERMINAL_FAILURES = {PipelineStage.REJECTED, PipelineStage.FAILED}


# ===== REQUEST MODEL =====

@dataclass(frozen=True)
class ConversionOptions:
    """Query-derived options for one conversion."""

    language: Optional[str] = DEFAULT_LANGUAGE
    remove_alt: bool = False
    converter_options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "converter_options", MappingProxyType(dict(self.converter_options)))


@dataclass(frozen=True)
class ConversionRequest:
    """Immutable view of an inbound conversion request."""

    body: bytes
    content_type: Optional[str] = None
    accept: Optional[str] = None
    options: ConversionOptions = field(default_factory=ConversionOptions)


@dataclass(frozen=True)
class ConvertedDocument:
    body: str
    media_type: str
    workspace_id: str


# ===== REGISTRY =====

@dataclass(frozen=True)
class InputFormat:
    """
    An accepted input format.

    Attributes:
        name: Short name used in route paths, e.g. ``rtf``
        declared_types: Content-Type header values a client may send
        sniffed_types: Canonical MIME types the payload must sniff as
        extension: File extension used when materializing the payload
    """

    name: str
    declared_types: Tuple[str, ...]
    sniffed_types: Tuple[str, ...]
    extension: str


class FormatRegistry:
    """Read-only lookup of input formats by name."""

    def __init__(self, formats: Iterable[InputFormat]):
        self._formats = MappingProxyType({fmt.name: fmt for fmt in formats})

    def get(self, name: str) -> InputFormat:
        return self._formats[name]

    def __contains__(self, name: str) -> bool:
        return name in self._formats

    def __iter__(self) -> Iterator[InputFormat]:
        return iter(self._formats.values())

    @classmethod
    def default(cls) -> "FormatRegistry":
        return cls([
            InputFormat("rtf", RTF_CONTENT_TYPES, ("application/rtf",), "rtf"),
            InputFormat("pdf", PDF_CONTENT_TYPES, ("application/pdf",), "pdf"),
            InputFormat("image", IMAGE_CONTENT_TYPES, IMAGE_CONTENT_TYPES, "img"),
        ])


@dataclass(frozen=True)
class ConversionRoute:
    """
    One input format to output format conversion.

    Attributes:
        input_format: Accepted input
        output: Output name used in the path, ``html`` or ``txt``
        converter: Adapter that runs the external tool
        converter_defaults: Options always passed to the adapter, overridable per request
        normalizer: Post-processing applied to the adapter's output
        tidy: Run HTML outputs through the tidy stage
    """

    input_format: InputFormat
    output: str
    converter: ExternalConverter
    converter_defaults: Mapping[str, Any] = field(default_factory=dict)
    normalizer: OutputNormalizer = field(default_factory=OutputNormalizer)
    tidy: bool = True

    @property
    def path(self) -> str:
        return f"/{self.input_format.name}/{self.output}"

    @property
    def label(self) -> str:
        return f"{self.input_format.name}-to-{self.output}"

    def converter_options(self, options: ConversionOptions) -> Dict[str, Any]:
        merged = dict(self.converter_defaults)
        merged.update(options.converter_options)
        return merged

    def media_type_for(self, options: ConversionOptions) -> str:
        return self.converter.output_media_type(self.converter_options(options))


def build_routes(settings: Settings, registry: Optional[FormatRegistry] = None) -> Tuple[ConversionRoute, ...]:
    """Build the standard route table from settings."""
    registry = registry or FormatRegistry.default()
    unrtf = UnRTFConverter(settings.unrtf_binary, settings.converter_timeout)
    pdftotext = PdfToTextConverter(settings.pdftotext_binary, settings.converter_timeout)
    text_only = OutputNormalizer(inject_title=False, strip_images=False)

    routes = [
        ConversionRoute(registry.get("rtf"), "html", unrtf, {"output": "html", "no_pictures": True}),
        ConversionRoute(registry.get("rtf"), "txt", unrtf, {"output": "text", "no_pictures": True},
                        normalizer=text_only),
        ConversionRoute(registry.get("pdf"), "txt", pdftotext, {"output_encoding": "UTF-8"},
                        normalizer=text_only),
    ]

    if settings.tesseract_enabled:
        tesseract = TesseractConverter(
            settings.tesseract_binary,
            settings.converter_timeout,
            languages=settings.tesseract_languages,
        )
        routes.append(ConversionRoute(registry.get("image"), "txt", tesseract, normalizer=text_only))

    return tuple(routes)


# ===== PIPELINE =====

class PipelineRun:
    """Stage tracking for one request."""

    def __init__(self, route: ConversionRoute):
        self.route = route
        self.stage = PipelineStage.RECEIVED
        self.workspace: Optional[Workspace] = None

    @property
    def tag(self) -> str:
        return self.workspace.id if self.workspace else self.route.label

    def advance(self, stage: PipelineStage, detail: str = "") -> None:
        suffix = f" ({detail})" if detail else ""
        logger.debug(f"{self.tag}: {self.stage.value} -> {stage.value}{suffix}")
        self.stage = stage


class ConversionPipeline:
    """
    Runs conversion requests against a fixed route table.

    Args:
        routes: Route table; paths must be unique
        workspaces: Workspace manager for the shared temp directory
        detector: Magic-number sniffer
        tidier: HTML tidy stage
        max_upload_bytes: Reject larger payloads with 413. None disables the limit.
    """

    def __init__(
        self,
        routes: Iterable[ConversionRoute],
        workspaces: WorkspaceManager,
        detector: Optional[MimeTypeDetector] = None,
        tidier: Optional[HtmlTidier] = None,
        max_upload_bytes: Optional[int] = None,
    ):
        table = {}
        for route in routes:
            if route.path in table:
                raise ValueError(f"Duplicate conversion route: {route.path}")
            table[route.path] = route
        self.routes = MappingProxyType(table)
        self.workspaces = workspaces
        self.detector = detector or MimeTypeDetector()
        self.tidier = tidier or HtmlTidier()
        self.max_upload_bytes = max_upload_bytes

    def check_size(self, size: int) -> None:
        if self.max_upload_bytes is not None and size > self.max_upload_bytes:
            raise PayloadTooLargeError(self.max_upload_bytes)

    async def run(
        self,
        route: ConversionRoute,
        request: ConversionRequest,
        finalizers: RequestFinalizers,
    ) -> ConvertedDocument:
        """
        Convert one request.

        Args:
            route: Route the request arrived on
            request: Payload, headers and options
            finalizers: Registry the workspace cleanup is bound to

        Returns:
            ConvertedDocument with the response body and media type

        Raises:
            ClientInputError: Rejected input (4xx)
            ConversionToolError: Converter or filesystem failure (5xx)
        """
        run = PipelineRun(route)
        try:
            return await self._run(run, request, finalizers)
        except ClientInputError as e:
            run.advance(PipelineStage.REJECTED, e.message)
            raise
        except Exception as e:
            run.advance(PipelineStage.FAILED, str(e))
            raise

    async def _run(
        self,
        run: PipelineRun,
        request: ConversionRequest,
        finalizers: RequestFinalizers,
    ) -> ConvertedDocument:
        route = run.route
        fmt = route.input_format

        self.check_size(len(request.body or b""))

        if request.body and not declared_type_accepted(request.content_type, fmt.declared_types):
            raise UnsupportedMediaTypeError(declared=normalize_mime_type(request.content_type) or "none")

        detected = self.detector.sniff(request.body, fmt.sniffed_types)
        run.advance(PipelineStage.SNIFFED, detected)

        options = request.options
        language = validate_language(options.language)
        media_type = route.media_type_for(options)
        ensure_acceptable(request.accept, media_type)

        workspace = await self.workspaces.allocate_async(route.label)
        run.workspace = workspace
        finalizers.register(lambda: self._finalize(run), name=f"cleanup {workspace.id}")

        input_path = await self.workspaces.materialize_async(workspace, request.body, fmt.extension)
        run.advance(PipelineStage.STAGED, input_path.name)

        raw = await route.converter.convert(input_path, route.converter_options(options), workspace)
        run.advance(PipelineStage.CONVERTED)

        body = await asyncio.to_thread(route.normalizer.normalize, raw)
        run.advance(PipelineStage.NORMALIZED)

        if route.tidy and media_type == "text/html":
            body = await asyncio.to_thread(self.tidier.tidy, body, language, options.remove_alt)
            run.advance(PipelineStage.TIDIED)

        return ConvertedDocument(body=body, media_type=media_type, workspace_id=workspace.id)

    async def _finalize(self, run: PipelineRun) -> None:
        if run.stage not in TERMINAL_FAILURES:
            run.advance(PipelineStage.SENT)
        removed = await self.workspaces.cleanup_async(run.workspace)
        run.advance(PipelineStage.CLEANED, f"{removed} file(s) removed")
