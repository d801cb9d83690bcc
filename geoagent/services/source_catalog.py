"""
Source Catalog.

Registry of the data sources a structured query may name, and the
request builder turning ``(source, layer or tag, bbox, filter)`` into a
transport-level request description. The catalog never performs I/O;
FeatureFetcher executes what it builds.

Sources:
    ign      IGN Geoplateforme WFS (French administrative and topographic data)
    osm      OpenStreetMap through the Overpass API
    project  Host document tables (read through the record store)

Exports:
    SourceCatalog: The registry
    SourceDefinition, LayerDefinition, TagDefinition, TableDefinition: Catalog entries
    SourceRequest: Request description
    CatalogMatch: Result of a natural-language alias lookup
    build_cql_filter: Attribute equality filter in CQL
"""

import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from geoagent.config import SourceConfig
from geoagent.config.defaults import SourceDefaults
from geoagent.core.models import SourceType
from geoagent.exceptions import UnknownSourceError

_OSM_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_:\-]+$")


# ============================================================================
# CATALOG ENTRIES
# ============================================================================

class LayerDefinition(BaseModel):
    """A WFS feature type."""
    key: str
    type_name: str
    name: str
    geometry_type: str
    attributes: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)
    description: str = ""


class TagDefinition(BaseModel):
    """An OSM tag family and the values the agent is expected to use."""
    tag: str
    description: str = ""
    values: Dict[str, List[str]] = Field(default_factory=dict, description="value -> aliases")


class TableDefinition(BaseModel):
    """A host table readable as features."""
    table: str
    name: str
    description: str = ""
    geometry_column: str = SourceDefaults.PROJECT_GEOMETRY_COLUMN
    columns: Dict[str, str] = Field(default_factory=dict)
    searchable_columns: List[str] = Field(default_factory=list)


class SourceDefinition(BaseModel):
    id: str
    name: str
    type: SourceType
    endpoint: Optional[str] = None
    description: str = ""
    capabilities: List[str] = Field(default_factory=list)
    layers: Dict[str, LayerDefinition] = Field(default_factory=dict)
    tags: Dict[str, TagDefinition] = Field(default_factory=dict)
    tables: Dict[str, TableDefinition] = Field(default_factory=dict)


class SourceRequest(BaseModel):
    """
    What FeatureFetcher has to do for one fetch.

    HTTP sources fill ``method``/``url``/``params``/``content``; record
    sources fill ``table``/``geometry_column``/``filter``.
    """
    source: str
    source_type: SourceType
    method: Optional[str] = None
    url: Optional[str] = None
    params: Dict[str, str] = Field(default_factory=dict)
    content: Optional[str] = None
    layer: Optional[str] = None
    tag: Optional[str] = None
    value: Optional[str] = None
    table: Optional[str] = None
    geometry_column: Optional[str] = None
    filter: Dict[str, Any] = Field(default_factory=dict)


class CatalogMatch(BaseModel):
    source: str
    layer: Optional[str] = None
    type_name: Optional[str] = None
    tag: Optional[str] = None
    value: Optional[str] = None


# ============================================================================
# DEFAULT SOURCES
# ============================================================================

def _ign_layers() -> Dict[str, LayerDefinition]:
    layers = [
        LayerDefinition(
            key="communes", type_name="BDTOPO_V3:commune", name="Communes",
            geometry_type="Polygon", attributes=["nom", "code_insee", "population"],
            aliases=["commune", "communes", "ville", "villes", "municipalité"],
            description="Limites administratives des communes françaises",
        ),
        LayerDefinition(
            key="departements", type_name="BDTOPO_V3:departement", name="Départements",
            geometry_type="Polygon", attributes=["nom", "code_insee", "numero"],
            aliases=["département", "départements", "dept"],
            description="Limites administratives des départements",
        ),
        LayerDefinition(
            key="regions", type_name="BDTOPO_V3:region", name="Régions",
            geometry_type="Polygon", attributes=["nom", "code_insee"],
            aliases=["région", "régions"],
            description="Limites administratives des régions",
        ),
        LayerDefinition(
            key="arrondissements", type_name="ADMINEXPRESS-COG-CARTO.LATEST:arrondissement",
            name="Arrondissements", geometry_type="Polygon", attributes=["nom", "code_insee"],
            aliases=["arrondissement", "arrondissements"],
            description="Arrondissements municipaux",
        ),
        LayerDefinition(
            key="batiments", type_name="BDTOPO_V3:batiment", name="Bâtiments",
            geometry_type="Polygon", attributes=["nature", "usage", "hauteur"],
            aliases=["bâtiment", "bâtiments", "building", "buildings", "immeuble"],
            description="Emprises des bâtiments",
        ),
        LayerDefinition(
            key="routes", type_name="BDTOPO_V3:route", name="Routes",
            geometry_type="LineString", attributes=["classe", "nature", "numero"],
            aliases=["route", "routes", "voie", "voies", "rue", "rues"],
            description="Réseau routier",
        ),
        LayerDefinition(
            key="cours_eau", type_name="BDTOPO_V3:cours_d_eau", name="Cours d'eau",
            geometry_type="LineString", attributes=["nom", "classe", "regime"],
            aliases=["cours d'eau", "rivière", "rivières", "fleuve", "fleuves"],
            description="Réseau hydrographique",
        ),
    ]
    return {layer.key: layer for layer in layers}


def _osm_tags() -> Dict[str, TagDefinition]:
    tags = [
        TagDefinition(tag="amenity", description="Équipements et services", values={
            "school": ["école", "écoles", "school", "schools"],
            "hospital": ["hôpital", "hôpitaux", "hospital", "hospitals"],
            "pharmacy": ["pharmacie", "pharmacies", "pharmacy"],
            "restaurant": ["restaurant", "restaurants"],
            "cafe": ["café", "cafés", "cafe", "cafes"],
            "bank": ["banque", "banques", "bank", "banks"],
            "post_office": ["poste", "bureau de poste", "post office"],
            "library": ["bibliothèque", "bibliothèques", "library"],
            "town_hall": ["mairie", "mairies", "town hall", "hôtel de ville"],
        }),
        TagDefinition(tag="highway", description="Infrastructure routière", values={
            "primary": ["route principale", "primary road"],
            "secondary": ["route secondaire", "secondary road"],
            "residential": ["rue résidentielle", "residential street"],
            "footway": ["chemin piéton", "footpath", "trottoir"],
            "cycleway": ["piste cyclable", "bike path"],
        }),
        TagDefinition(tag="building", description="Bâtiments", values={
            "yes": ["bâtiment", "building"],
            "house": ["maison", "house"],
            "apartments": ["immeuble", "appartements", "apartments"],
            "commercial": ["commercial", "commerce"],
            "industrial": ["industriel", "industrial"],
        }),
        TagDefinition(tag="natural", description="Éléments naturels", values={
            "water": ["eau", "water", "lac", "étang"],
            "wood": ["forêt", "bois", "forest", "wood"],
            "tree": ["arbre", "arbres", "tree", "trees"],
            "peak": ["sommet", "pic", "peak", "mountain"],
        }),
        TagDefinition(tag="landuse", description="Utilisation du sol", values={
            "residential": ["résidentiel", "residential"],
            "commercial": ["commercial", "commerce"],
            "industrial": ["industriel", "industrial", "zone industrielle"],
            "forest": ["forêt", "forest", "bois"],
            "farmland": ["agricole", "farmland", "terres agricoles"],
        }),
    ]
    return {tag.tag: tag for tag in tags}


def default_sources(config: SourceConfig) -> Dict[str, SourceDefinition]:
    """The ign / osm / project sources with endpoints from configuration."""
    return {
        "ign": SourceDefinition(
            id="ign",
            name="IGN Géoplateforme",
            type=SourceType.WFS,
            endpoint=config.ign_wfs_url,
            description="Service WFS de l'IGN - données administratives et topographiques françaises",
            capabilities=["spatial_query", "bbox_filter", "attribute_filter", "crs_transform"],
            layers=_ign_layers(),
        ),
        "osm": SourceDefinition(
            id="osm",
            name="OpenStreetMap",
            type=SourceType.OVERPASS,
            endpoint=config.osm_overpass_url,
            description="Données OpenStreetMap via Overpass API",
            capabilities=["spatial_query", "bbox_filter", "tag_filter", "around_filter"],
            tags=_osm_tags(),
        ),
        "project": SourceDefinition(
            id="project",
            name="Projet Grist",
            type=SourceType.RECORDS,
            description="Données du projet stockées dans Grist",
            capabilities=["attribute_filter", "full_crud"],
            tables={
                config.project_table: TableDefinition(
                    table=config.project_table,
                    name="Workspace",
                    description="Couche de travail principale",
                    columns={
                        "geometry_wgs84": "geometry",
                        "layer_name": "text",
                        "feature_name": "text",
                        "geometry_type": "text",
                        "properties": "json",
                        "is_visible": "boolean",
                        "z_index": "number",
                    },
                    searchable_columns=["feature_name", "layer_name", "properties"],
                ),
            },
        ),
    }


# ============================================================================
# REQUEST HELPERS
# ============================================================================

def build_cql_filter(filter: Dict[str, Any]) -> Optional[str]:
    """
    Attribute equality filter as CQL, clauses joined with AND.

    Strings are single-quoted with embedded quotes doubled.
    """
    if not filter:
        return None
    clauses = []
    for key, value in filter.items():
        if value is None:
            clauses.append(f"{key} IS NULL")
        elif isinstance(value, bool):
            clauses.append(f"{key} = {'true' if value else 'false'}")
        elif isinstance(value, (int, float)):
            clauses.append(f"{key} = {value}")
        else:
            escaped = str(value).replace("'", "''")
            clauses.append(f"{key} = '{escaped}'")
    return " AND ".join(clauses)


def _overpass_bbox(bbox: Optional[Sequence[float]]) -> str:
    # Overpass wants (south, west, north, east)
    if not bbox:
        return ""
    min_x, min_y, max_x, max_y = bbox
    return f"({min_y},{min_x},{max_y},{max_x})"


def build_overpass_query(tag: str, value: str, bbox: Optional[Sequence[float]] = None,
                         around: Optional[Dict[str, float]] = None,
                         timeout: int = SourceDefaults.OVERPASS_TIMEOUT_SECONDS) -> str:
    """Overpass QL union of node/way/relation carrying ``tag=value``."""
    escaped = value.replace('"', '\\"')
    selector = f'["{tag}"="{escaped}"]'
    if around:
        spatial = f"(around:{around['radius']},{around['lat']},{around['lon']})"
    else:
        spatial = _overpass_bbox(bbox)
    body = "".join(f"{kind}{selector}{spatial};" for kind in ("node", "way", "relation"))
    return f"[out:json][timeout:{timeout}];({body});out geom;"


# ============================================================================
# CATALOG
# ============================================================================

class SourceCatalog:
    """
    Registry of queryable sources.

    Usage:
        catalog = SourceCatalog(get_config().sources)
        request = catalog.build_request("ign", "communes", filter={"nom": "Paris"})
    """

    def __init__(self, config: Optional[SourceConfig] = None,
                 sources: Optional[Dict[str, SourceDefinition]] = None):
        self.config = config or SourceConfig()
        self.sources = sources if sources is not None else default_sources(self.config)
        self._aliases = self._build_aliases()

    def _build_aliases(self) -> Dict[str, CatalogMatch]:
        aliases: Dict[str, CatalogMatch] = {}
        for source in self.sources.values():
            for key, layer in source.layers.items():
                for alias in layer.aliases:
                    aliases[alias.lower()] = CatalogMatch(
                        source=source.id, layer=key, type_name=layer.type_name
                    )
            for tag, definition in source.tags.items():
                for value, value_aliases in definition.values.items():
                    for alias in value_aliases:
                        aliases[alias.lower()] = CatalogMatch(source=source.id, tag=tag, value=value)
        return aliases

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def list_sources(self) -> List[SourceDefinition]:
        return list(self.sources.values())

    def source_types(self) -> set:
        return {source.type for source in self.sources.values()}

    def get_source(self, source_id: str) -> SourceDefinition:
        """Raises UnknownSourceError when the id is not registered."""
        try:
            return self.sources[source_id]
        except KeyError:
            raise UnknownSourceError(
                f"Unknown source '{source_id}'. Available: {sorted(self.sources)}"
            ) from None

    def get_metadata(self, source_id: str, layer_or_tag: str):
        """Layer, tag or table definition, or None when absent."""
        source = self.sources.get(source_id)
        if source is None:
            return None
        return (
            source.layers.get(layer_or_tag)
            or source.tags.get(layer_or_tag)
            or source.tables.get(layer_or_tag)
        )

    def get_capabilities(self, source_id: str) -> List[str]:
        source = self.sources.get(source_id)
        return list(source.capabilities) if source else []

    def has_capability(self, source_id: str, capability: str) -> bool:
        return capability in self.get_capabilities(source_id)

    def find_by_alias(self, phrase: str) -> Optional[CatalogMatch]:
        """
        Natural-language lookup ("écoles", "communes").

        Tries the phrase as is, then simple plural/singular variants.
        """
        normalized = phrase.lower().strip()
        variations = [
            normalized,
            normalized + "s",
            re.sub(r"s$", "", normalized),
            re.sub(r"x$", "", normalized),
            normalized + "x",
        ]
        for variation in variations:
            if variation in self._aliases:
                return self._aliases[variation]
        return None

    def search(self, text: str) -> List[Dict[str, Any]]:
        """Layers and tag values whose name, description or aliases contain ``text``."""
        needle = text.lower()
        results = []
        for source in self.sources.values():
            for key, layer in source.layers.items():
                haystack = [layer.name, layer.description, *layer.aliases]
                if any(needle in h.lower() for h in haystack):
                    results.append({
                        "source": source.id, "layer": key,
                        "name": layer.name, "description": layer.description,
                    })
            for tag, definition in source.tags.items():
                for value, aliases in definition.values.items():
                    if any(needle in a.lower() for a in aliases):
                        results.append({
                            "source": source.id, "tag": tag, "value": value, "aliases": aliases,
                        })
        return results

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def build_request(self, source_id: str, layer_or_tag: Optional[str],
                      value: Optional[str] = None,
                      bbox: Optional[Sequence[float]] = None,
                      filter: Optional[Dict[str, Any]] = None,
                      max_features: Optional[int] = None,
                      around: Optional[Dict[str, float]] = None) -> SourceRequest:
        """
        Describe the request that fetches one dataset.

        Raises:
            UnknownSourceError: Unknown source, WFS layer, or malformed OSM tag
        """
        source = self.get_source(source_id)
        if source.type == SourceType.WFS:
            return self._build_wfs(source, layer_or_tag, bbox, filter, max_features)
        if source.type == SourceType.OVERPASS:
            return self._build_overpass(source, layer_or_tag, value, bbox, around)
        return self._build_records(source, layer_or_tag, filter)

    def _build_wfs(self, source: SourceDefinition, layer_key: Optional[str],
                   bbox, filter, max_features) -> SourceRequest:
        layer = source.layers.get(layer_key or "")
        if layer is None:
            raise UnknownSourceError(
                f"Unknown {source.id} layer '{layer_key}'. Available: {sorted(source.layers)}"
            )
        params = {
            "service": "WFS",
            "version": "2.0.0",
            "request": "GetFeature",
            "typeName": layer.type_name,
            "outputFormat": "application/json",
            "srsName": "EPSG:4326",
            "count": str(max_features or self.config.max_features),
        }
        if bbox:
            params["bbox"] = ",".join(str(c) for c in bbox) + ",EPSG:4326"
        cql = build_cql_filter(filter or {})
        if cql:
            params["cql_filter"] = cql
        return SourceRequest(
            source=source.id, source_type=source.type, method="GET",
            url=source.endpoint, params=params, layer=layer.key,
        )

    def _build_overpass(self, source: SourceDefinition, tag: Optional[str],
                        value: Optional[str], bbox, around) -> SourceRequest:
        if not tag or not _OSM_TAG_PATTERN.match(tag):
            raise UnknownSourceError(f"Invalid {source.id} tag '{tag}'")
        if not value:
            raise UnknownSourceError(f"{source.id} tag '{tag}' needs a value")
        return SourceRequest(
            source=source.id, source_type=source.type, method="POST",
            url=source.endpoint, content=build_overpass_query(tag, value, bbox, around),
            tag=tag, value=value,
        )

    def _build_records(self, source: SourceDefinition, table: Optional[str], filter) -> SourceRequest:
        table = table or self.config.project_table
        definition = source.tables.get(table)
        geometry_column = definition.geometry_column if definition else SourceDefaults.PROJECT_GEOMETRY_COLUMN
        return SourceRequest(
            source=source.id, source_type=source.type, table=table,
            geometry_column=geometry_column, filter=dict(filter or {}),
        )
