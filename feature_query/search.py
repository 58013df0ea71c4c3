# ============================================================================
# CLAUDE CONTEXT - ATTRIBUTE SEARCH RESOLVER
# ============================================================================
# STATUS: Engine Module - WFS attribute search and value suggestions
# PURPOSE: Schema loading, raster detection, filtered GetFeature and debounced suggestions
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: AttributeSearchResolver, SuggestionDebouncer, RasterClassification,
#          classify_raster, parse_schema, SchemaStatus, SearchStatus, SchemaLoadResult
# DEPENDENCIES: asyncio, feature_query.base, feature_query.filters, util_logger
# PATTERNS: State machine, cached schema per layer, replaceable debounce task
# ENTRY_POINTS: await resolver.load_schema(layer); await resolver.search(layer, field, op, value)
# ============================================================================

"""
Attribute Search Resolver

Schema:  LayerChosen -> SchemaLoading -> FieldsReady | RasterBlocked | SchemaError
Search:  FieldChosen -> ValueEditing -> Searching -> Results | NoResults | SearchError

Choosing a layer first runs the raster policy. Raster layers are blocked
without issuing any request. Otherwise the layer's DescribeFeatureType is
fetched (once per session) and turned into searchable fields. A newer layer
choice supersedes an in-flight schema load; the older answer is cached but
never becomes the active field list.

Zero matches is the NO_RESULTS outcome: the selection is cleared and the user
is told nothing matched. It is never reported as an error.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from util_logger import LoggerFactory, ComponentType, LogContext
from .base import LayerQueryResolver
from .errors import (
    FeatureQueryError,
    InvalidSearchInput,
    RasterUnsupported,
    SchemaError,
)
from .filters import build_filter, build_prefix_filter, effective_operator
from .models import (
    GEOMETRY_PROPERTY_NAMES,
    Layer,
    LayerFieldSchema,
    LayerSchema,
    QueryOutcome,
    QueryResult,
    SearchCriteria,
    fit_to_features,
)

MSG_NO_RESULTS = "No results found"
MSG_SEARCH_FAILED = "The search could not be completed. Please try again."

_STRING_TYPE_TOKENS = ("string", "text", "char")


# ============================================================================
# RASTER POLICY
# ============================================================================

@dataclass(frozen=True)
class RasterClassification:
    is_raster: bool
    evidence: List[str] = field(default_factory=list)


def classify_raster(layer: Layer) -> RasterClassification:
    """
    Heuristic raster detection from capability metadata.

    A layer is treated as raster when any keyword or style name contains
    "raster" (case-insensitive). This is not authoritative: a vector layer
    with such a keyword is blocked, and a raster layer without one is not.
    """
    evidence = [f"keyword:{k}" for k in layer.keywords if "raster" in k.lower()]
    evidence += [f"style:{s}" for s in layer.styles if "raster" in s.lower()]
    return RasterClassification(is_raster=bool(evidence), evidence=evidence)


# ============================================================================
# SCHEMA
# ============================================================================

def classify_field_type(type_token: str) -> str:
    token = (type_token or "").lower()
    return "string" if any(t in token for t in _STRING_TYPE_TOKENS) else "number"


def parse_schema(payload: Any, layer_key: str) -> LayerSchema:
    """
    Turn a DescribeFeatureType JSON document into a LayerSchema.

    GeoServer's JSON output lists properties under ``featureTypes[0]``::

        {"featureTypes": [{"typeName": "parks", "properties": [
            {"name": "the_geom", "type": "gml:MultiPolygon", "localType": "MultiPolygon"},
            {"name": "name", "type": "xsd:string", "localType": "string"}]}]}

    Properties named geometry/geom or typed gml:* are geometry, not fields.

    Raises:
        SchemaError: If the document has no feature type or property list
    """
    if not isinstance(payload, dict):
        raise SchemaError(f"Schema for {layer_key} is not a JSON object")
    feature_types = payload.get("featureTypes")
    if not isinstance(feature_types, list) or not feature_types:
        raise SchemaError(f"Schema for {layer_key} has no featureTypes")
    properties = feature_types[0].get("properties") if isinstance(feature_types[0], dict) else None
    if not isinstance(properties, list):
        raise SchemaError(f"Schema for {layer_key} has no property list")

    fields: List[LayerFieldSchema] = []
    geometry_property = None
    geometry_type = None
    for prop in properties:
        if not isinstance(prop, dict) or not prop.get("name"):
            raise SchemaError(f"Schema for {layer_key} has a property without a name")
        name = prop["name"]
        type_token = str(prop.get("type") or prop.get("localType") or "")
        if type_token.lower().startswith("gml:"):
            geometry_property = name
            geometry_type = prop.get("localType") or type_token.split(":", 1)[1]
            continue
        if name.lower() in GEOMETRY_PROPERTY_NAMES:
            geometry_property = geometry_property or name
            continue
        fields.append(LayerFieldSchema(name=name, type=classify_field_type(prop.get("localType") or type_token)))

    return LayerSchema(
        layer_key=layer_key,
        fields=tuple(fields),
        geometry_property=geometry_property,
        geometry_type=geometry_type,
    )


class SchemaStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    RASTER_BLOCKED = "raster_blocked"
    ERROR = "error"


class SearchStatus(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SEARCHING = "searching"
    RESULTS = "results"
    NO_RESULTS = "no_results"
    ERROR = "error"


@dataclass(frozen=True)
class SchemaLoadResult:
    outcome: QueryOutcome
    schema: Optional[LayerSchema] = None
    message: Optional[str] = None

    @property
    def fields(self) -> List[LayerFieldSchema]:
        return list(self.schema.fields) if self.schema else []


# ============================================================================
# SUGGESTION DEBOUNCER
# ============================================================================

class SuggestionDebouncer:
    """
    Replaceable scheduled suggestion fetch.

    Every ``schedule()`` cancels the pending task and starts a new one that
    waits ``delay_ms`` before fetching. Only the most recently scheduled task
    may update ``suggestions``. Must be called from a running event loop.
    """

    def __init__(
        self,
        fetch: Callable[..., Awaitable[List[str]]],
        delay_ms: int = 300,
        on_suggestions: Optional[Callable[[List[str]], None]] = None
    ):
        self._fetch = fetch
        self.delay_ms = delay_ms
        self.on_suggestions = on_suggestions
        self.suggestions: List[str] = []
        self._task: Optional[asyncio.Task] = None
        self._sequence = 0

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, *args) -> "asyncio.Task[Optional[List[str]]]":
        self.cancel()
        self._sequence += 1
        self._task = asyncio.get_running_loop().create_task(self._run(self._sequence, args))
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, sequence: int, args) -> Optional[List[str]]:
        await asyncio.sleep(self.delay_ms / 1000)
        values = await self._fetch(*args)
        if sequence != self._sequence:
            return None
        self.suggestions = values
        if self.on_suggestions:
            self.on_suggestions(values)
        return values


# ============================================================================
# RESOLVER
# ============================================================================

class AttributeSearchResolver(LayerQueryResolver):
    """
    Attribute search against WFS with CQL filters.

    Usage:
        resolver = AttributeSearchResolver(client, state)
        loaded = await resolver.load_schema(layer)
        if loaded.outcome is QueryOutcome.RESOLVED:
            result = await resolver.search(layer, "height", ">", "50")
    """

    logger = LoggerFactory.create_logger(ComponentType.RESOLVER, "AttributeSearchResolver")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._schemas: Dict[str, LayerSchema] = {}
        self._schema_generation = 0
        self.active_layer: Optional[Layer] = None
        self.active_schema: Optional[LayerSchema] = None
        self.schema_status = SchemaStatus.IDLE
        self.search_status = SearchStatus.IDLE
        self.message: Optional[str] = None
        self.debouncer = SuggestionDebouncer(self.suggest, delay_ms=self.config.suggest_debounce_ms)

    @property
    def fields(self) -> List[LayerFieldSchema]:
        """Fields of the active layer; empty unless its schema is ready."""
        if self.schema_status is not SchemaStatus.READY or self.active_schema is None:
            return []
        return list(self.active_schema.fields)

    def cached_schema(self, layer: Layer) -> Optional[LayerSchema]:
        return self._schemas.get(layer.type_name)

    # ========================================================================
    # SCHEMA LOADING
    # ========================================================================

    async def load_schema(self, layer: Layer) -> SchemaLoadResult:
        """
        Choose a layer for searching.

        Returns:
            SchemaLoadResult: RESOLVED with the schema, RASTER_BLOCKED,
            SCHEMA_ERROR or SUPERSEDED (a newer layer was chosen meanwhile)
        """
        self._schema_generation += 1
        generation = self._schema_generation
        self.active_layer = layer
        self.active_schema = None
        self.schema_status = SchemaStatus.LOADING
        self.search_status = SearchStatus.IDLE
        self.debouncer.cancel()
        context = LogContext(interaction_kind="search", layer=layer.type_name, request_kind="DescribeFeatureType")
        dims = {'custom_dimensions': context.to_dict()}

        classification = classify_raster(layer)
        if classification.is_raster:
            error = RasterUnsupported(layer.type_name, classification.evidence)
            self.logger.info(str(error), extra=dims)
            return self._schema_failed(SchemaStatus.RASTER_BLOCKED, QueryOutcome.RASTER_BLOCKED, error)

        try:
            schema = await self._get_schema(layer)
        except FeatureQueryError as e:
            if generation != self._schema_generation:
                return SchemaLoadResult(outcome=QueryOutcome.SUPERSEDED)
            self.logger.warning(f"❌ Schema load failed for {layer.type_name}: {e}", extra=dims)
            return self._schema_failed(SchemaStatus.ERROR, QueryOutcome.SCHEMA_ERROR, SchemaError(str(e)))

        if generation != self._schema_generation:
            self.logger.debug(f"Schema for {layer.type_name} arrived after a newer layer choice", extra=dims)
            return SchemaLoadResult(outcome=QueryOutcome.SUPERSEDED, schema=schema)

        self.active_schema = schema
        self.schema_status = SchemaStatus.READY
        self.message = None
        self.logger.info(f"✅ Schema ready for {layer.type_name}: {len(schema.fields)} fields", extra=dims)
        return SchemaLoadResult(outcome=QueryOutcome.RESOLVED, schema=schema)

    async def _get_schema(self, layer: Layer) -> LayerSchema:
        cached = self._schemas.get(layer.type_name)
        if cached is not None:
            return cached
        response = await self.client.request(layer.request_builder.describe_feature_type())
        response.raise_for_error()
        schema = parse_schema(response.data, layer.type_name)
        self._schemas[layer.type_name] = schema
        return schema

    def _schema_failed(self, status: SchemaStatus, outcome: QueryOutcome,
                       error: FeatureQueryError) -> SchemaLoadResult:
        self.active_schema = None
        self.schema_status = status
        self.message = error.user_message
        return SchemaLoadResult(outcome=outcome, message=error.user_message)

    def reset(self) -> None:
        """Back to idle with no layer, no fields and no pending suggestion."""
        self._schema_generation += 1
        self.debouncer.cancel()
        self.active_layer = None
        self.active_schema = None
        self.schema_status = SchemaStatus.IDLE
        self.search_status = SearchStatus.IDLE
        self.message = None

    # ========================================================================
    # SEARCH
    # ========================================================================

    async def search(self, layer: Layer, field_name: str, operator: Optional[str], value: Any) -> QueryResult:
        """
        Run a single-predicate search and commit its results.

        Returns:
            QueryResult with outcome RESOLVED, NO_RESULTS, SEARCH_ERROR,
            RASTER_BLOCKED, SCHEMA_ERROR, INVALID_INPUT or SUPERSEDED
        """
        context = LogContext(interaction_kind="search", layer=layer.type_name, request_kind="GetFeature")
        dims = {'custom_dimensions': context.to_dict()}

        classification = classify_raster(layer)
        if classification.is_raster:
            error = RasterUnsupported(layer.type_name, classification.evidence)
            self.logger.info(f"Search blocked: {error}", extra=dims)
            return self._rejected(QueryOutcome.RASTER_BLOCKED, error.user_message)

        try:
            schema = await self._get_schema(layer)
        except FeatureQueryError as e:
            self.logger.warning(f"❌ Schema unavailable for {layer.type_name}: {e}", extra=dims)
            return self._rejected(QueryOutcome.SCHEMA_ERROR, SchemaError.user_message)

        try:
            field_schema = schema.get_field(field_name)
            if field_schema is None:
                raise InvalidSearchInput(f"Field {field_name!r} is not searchable on {layer.type_name}")
            cql_filter = build_filter(field_name, operator, value, field_schema.type)
        except InvalidSearchInput as e:
            self.logger.info(f"Search input rejected: {e}", extra=dims)
            return self._rejected(QueryOutcome.INVALID_INPUT, e.user_message)

        criteria = SearchCriteria(
            layer=layer.display_name,
            field=field_name,
            operator=effective_operator(operator, field_schema.type),
            value=str(value).strip() if field_schema.type == "number" else str(value),
            layer_key=layer.type_name,
        )

        self.debouncer.cancel()
        token = self.state.begin_interaction()
        context.interaction_id = token
        self.search_status = SearchStatus.SEARCHING
        output_crs, _ = self.projections.resolve(self.config.output_crs)

        request = layer.request_builder.get_feature(cql_filter=cql_filter, srs_name=output_crs)
        features = await self._fetch_features(request, layer.type_name, output_crs, output_crs, context)

        if features is None:
            if self.state.is_current(token):
                self.search_status = SearchStatus.ERROR
                self.message = MSG_SEARCH_FAILED
            return QueryResult(
                selection=self.state.snapshot,
                outcome=QueryOutcome.SEARCH_ERROR,
                message=MSG_SEARCH_FAILED
            )

        if not features:
            if not self.state.clear(token=token):
                return QueryResult(selection=self.state.snapshot, outcome=QueryOutcome.SUPERSEDED)
            self.search_status = SearchStatus.NO_RESULTS
            self.message = MSG_NO_RESULTS
            self.logger.info(f"Search {cql_filter} on {layer.type_name} matched nothing", extra=dims)
            return QueryResult(
                selection=self.state.snapshot,
                outcome=QueryOutcome.NO_RESULTS,
                message=MSG_NO_RESULTS
            )

        if not self.state.commit(features, criteria=criteria, token=token):
            return QueryResult(selection=self.state.snapshot, outcome=QueryOutcome.SUPERSEDED)

        self.search_status = SearchStatus.RESULTS
        self.message = None
        self.logger.info(f"✅ Search {cql_filter} on {layer.type_name}: {len(features)} features", extra=dims)
        self.state.notify_search_complete()
        return QueryResult(
            selection=self.state.snapshot,
            outcome=QueryOutcome.RESOLVED,
            fit=fit_to_features(
                features,
                padding=self.config.fit_padding_px,
                duration_ms=self.config.fit_duration_ms,
                max_zoom=self.config.fit_max_zoom
            ),
            zoom_to=self.zoom_to
        )

    def _rejected(self, outcome: QueryOutcome, message: str) -> QueryResult:
        if outcome in (QueryOutcome.RASTER_BLOCKED, QueryOutcome.SCHEMA_ERROR):
            self.active_schema = None
            self.schema_status = (
                SchemaStatus.RASTER_BLOCKED if outcome is QueryOutcome.RASTER_BLOCKED else SchemaStatus.ERROR
            )
            self.search_status = SearchStatus.IDLE
        self.message = message
        return QueryResult(selection=self.state.snapshot, outcome=outcome, message=message)

    def clear(self) -> QueryResult:
        """Explicit clear: drop the selection and criteria, notify search listeners."""
        self.debouncer.cancel()
        token = self.state.begin_interaction()
        self.state.clear(token=token)
        self.search_status = SearchStatus.IDLE
        self.message = None
        self.state.notify_search_complete()
        return QueryResult(selection=self.state.snapshot, outcome=QueryOutcome.CLEARED)

    # ========================================================================
    # SUGGESTIONS
    # ========================================================================

    async def suggest(self, layer: Layer, field_name: str, prefix: str) -> List[str]:
        """
        Distinct, sorted values of ``field_name`` starting with ``prefix``.

        Only string fields of non-raster layers get suggestions. Failures
        are logged and yield an empty list.
        """
        if not prefix or classify_raster(layer).is_raster:
            return []
        schema = self._schemas.get(layer.type_name)
        field_schema = schema.get_field(field_name) if schema else None
        if field_schema is not None and field_schema.type != "string":
            return []

        context = LogContext(interaction_kind="suggest", layer=layer.type_name, request_kind="GetFeature")
        try:
            cql_filter = build_prefix_filter(field_name, prefix)
        except InvalidSearchInput as e:
            self.logger.debug(f"No suggestions: {e}", extra={'custom_dimensions': context.to_dict()})
            return []

        request = layer.request_builder.get_feature(
            cql_filter=cql_filter,
            property_name=field_name,
            max_features=self.config.suggest_max_features
        )
        features = await self._fetch_features(request, layer.type_name, layer.reference_system,
                                              layer.reference_system, context)
        if not features:
            return []
        return distinct_values(features, field_name)

    def schedule_suggestions(self, layer: Layer, field_name: str, prefix: str) -> "asyncio.Task":
        """Debounced ``suggest``; each call replaces the previous pending one."""
        if self.search_status in (SearchStatus.IDLE, SearchStatus.RESULTS,
                                  SearchStatus.NO_RESULTS, SearchStatus.ERROR):
            self.search_status = SearchStatus.EDITING
        return self.debouncer.schedule(layer, field_name, prefix)


def distinct_values(features, field_name: str) -> List[str]:
    values = set()
    for feature in features:
        value = feature.properties.get(field_name)
        if value is not None:
            values.add(str(value))
    return sorted(values)
