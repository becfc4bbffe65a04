"""
HTTP routes.

Each ``ConversionRoute`` in the pipeline becomes a ``POST /{input}/{output}``
endpoint. The request body is the raw document; options are query
parameters.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse, Response

from .lifecycle import RequestFinalizers, get_finalizers
from .pipeline import ConversionOptions, ConversionPipeline, ConversionRequest, ConversionRoute, ConvertedDocument
from .tidy import DEFAULT_LANGUAGE
from .utils.error_handling import InvalidOptionError
from .utils.logging_config import get_logger

logger = get_logger(__name__)


class OutputEncoding(str, Enum):
    UTF8 = "UTF-8"
    LATIN1 = "Latin1"
    ASCII7 = "ASCII7"


# ===== QUERY OPTIONS =====

def common_query_options(
    language: Optional[str] = Query(
        DEFAULT_LANGUAGE, description="IANA language tag set as the document language"
    ),
    remove_alt: bool = Query(
        False, alias="removeAlt", description="Set alt attributes of images to an empty string"
    ),
    background_color: Optional[str] = Query(None, alias="backgroundColor"),
    fonts: Optional[List[str]] = Query(None),
) -> Dict[str, Any]:
    options: Dict[str, Any] = {"language": language, "remove_alt": remove_alt, "converter": {}}

    # Rendering hints, handed to the converter as-is
    if background_color:
        options["converter"]["background_color"] = background_color
    if fonts:
        options["converter"]["fonts"] = tuple(
            font.strip() for value in fonts for font in value.split(",") if font.strip()
        )
    return options


def pdf_query_options(
    first_page_to_convert: Optional[int] = Query(None, alias="firstPageToConvert", ge=1),
    last_page_to_convert: Optional[int] = Query(None, alias="lastPageToConvert", ge=1),
    maintain_layout: bool = Query(False, alias="maintainLayout"),
    no_page_breaks: bool = Query(False, alias="noPageBreaks"),
    bounding_box_xhtml: bool = Query(False, alias="boundingBoxXhtml"),
    bounding_box_xhtml_layout: bool = Query(False, alias="boundingBoxXhtmlLayout"),
    generate_html_meta_file: bool = Query(False, alias="generateHtmlMetaFile"),
    owner_password: Optional[str] = Query(None, alias="ownerPassword"),
    user_password: Optional[str] = Query(None, alias="userPassword"),
    output_encoding: OutputEncoding = Query(OutputEncoding.UTF8, alias="outputEncoding"),
    crop_box: bool = Query(False, alias="cropBox"),
) -> Dict[str, Any]:
    if (
        first_page_to_convert is not None
        and last_page_to_convert is not None
        and last_page_to_convert < first_page_to_convert
    ):
        raise InvalidOptionError(
            "lastPageToConvert", "lastPageToConvert must not be lower than firstPageToConvert"
        )

    return {
        "first_page_to_convert": first_page_to_convert,
        "last_page_to_convert": last_page_to_convert,
        "maintain_layout": maintain_layout,
        "no_page_breaks": no_page_breaks,
        "bounding_box_xhtml": bounding_box_xhtml,
        "bounding_box_xhtml_layout": bounding_box_xhtml_layout,
        "generate_html_meta_file": generate_html_meta_file,
        "owner_password": owner_password,
        "user_password": user_password,
        "output_encoding": output_encoding.value,
        "crop_box": crop_box,
    }


def no_query_options() -> Dict[str, Any]:
    return {}


# Format-specific query options, keyed by input format name
FORMAT_QUERY_OPTIONS = {
    "pdf": pdf_query_options,
}


# ===== ENDPOINTS =====

async def run_conversion(
    pipeline: ConversionPipeline,
    route: ConversionRoute,
    request: Request,
    options: ConversionOptions,
) -> ConvertedDocument:
    """Read the body and run the pipeline, bound to the request's finalizers."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        pipeline.check_size(int(content_length))

    conversion_request = ConversionRequest(
        body=await request.body(),
        content_type=request.headers.get("content-type"),
        accept=request.headers.get("accept"),
        options=options,
    )

    finalizers = get_finalizers(request)
    if finalizers is not None:
        return await pipeline.run(route, conversion_request, finalizers)

    # Without the middleware, clean up as soon as the handler is done
    finalizers = RequestFinalizers()
    try:
        return await pipeline.run(route, conversion_request, finalizers)
    finally:
        await finalizers.run()


def _make_endpoint(pipeline: ConversionPipeline, route: ConversionRoute):
    format_options = FORMAT_QUERY_OPTIONS.get(route.input_format.name, no_query_options)

    async def convert(
        request: Request,
        common: Dict[str, Any] = Depends(common_query_options),
        specific: Dict[str, Any] = Depends(format_options),
    ) -> Response:
        options = ConversionOptions(
            language=common["language"],
            remove_alt=common["remove_alt"],
            converter_options={**common["converter"], **specific},
        )
        document = await run_conversion(pipeline, route, request, options)
        return Response(content=document.body, media_type=document.media_type)

    convert.__name__ = route.label.replace("-", "_")
    return convert


def create_router(pipeline: ConversionPipeline) -> APIRouter:
    """Create the router for every route in ``pipeline`` plus the health check."""
    router = APIRouter()

    for route in pipeline.routes.values():
        router.add_api_route(
            route.path,
            _make_endpoint(pipeline, route),
            methods=["POST"],
            response_class=Response,
            tags=["conversions"],
            summary=f"Convert {route.input_format.name.upper()} to {route.output.upper()}",
        )
        logger.debug(f"Registered conversion route {route.path} ({route.converter.name})")

    router.add_api_route(
        "/admin/healthcheck",
        healthcheck,
        methods=["GET"],
        response_class=PlainTextResponse,
        tags=["admin"],
    )
    return router


async def healthcheck() -> str:
    return "ok"
