# ============================================================================
# TREATMENT REGISTRY
# ============================================================================
# STATUS: Service - Treatment id -> transform mapping
# PURPOSE: Look up, search and apply treatments named in structured queries
# ============================================================================
"""
Treatment Registry

Maps treatment ids (strings the agent writes into a structured query) to
transforms over a FeatureSet. Every transform takes and returns the same
shape, so treatments chain.

Usage:
    registry = TreatmentRegistry()          # built-in treatments

    @registry.register("snap", name="Accrocher", category="geometry")
    def snap(params: dict, data: FeatureSet) -> FeatureSet:
        ...

    registry.validate(["buffer", "snap"])    # raises UnknownTreatmentError
    result = registry.apply(TreatmentSpec(id="buffer", params={"distance": 500}), data)

Only ``buffer`` carries meaning today and it annotates features rather
than computing buffered geometry; every other built-in passes data
through unchanged.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from geoagent.core.models import FeatureSet, TreatmentSpec
from geoagent.exceptions import ContractViolationError, UnknownTreatmentError
from geoagent.util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "TreatmentRegistry")

TreatmentFunc = Callable[[Dict[str, Any], FeatureSet], FeatureSet]

_DISTANCE_PATTERN = re.compile(
    r"(?:à\s+moins\s+de|dans\s+un\s+rayon\s+de|autour\s+de|proche\s+de)\s+(\d+)\s*(km|m|kilometre|metre)",
    re.IGNORECASE,
)


@dataclass
class TreatmentDefinition:
    id: str
    name: str
    category: str
    handler: TreatmentFunc
    aliases: List[str] = field(default_factory=list)
    description: str = ""
    examples: List[str] = field(default_factory=list)
    geometries: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "aliases": list(self.aliases),
            "description": self.description,
            "examples": list(self.examples),
            "geometries": list(self.geometries),
        }


@dataclass
class TreatmentMatch:
    """Result of a natural-language lookup."""
    treatment: TreatmentDefinition
    suggested_params: Dict[str, Any] = field(default_factory=dict)


class TreatmentRegistry:
    """
    Registry of treatments for one orchestrator.

    Args:
        include_builtins: Register the built-in treatment set
    """

    def __init__(self, include_builtins: bool = True):
        self._treatments: Dict[str, TreatmentDefinition] = {}
        if include_builtins:
            register_builtin_treatments(self)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, treatment_id: str, *, name: Optional[str] = None,
                 category: str = "custom", aliases: Iterable[str] = (),
                 description: str = "", examples: Iterable[str] = (),
                 geometries: Iterable[str] = ()):
        """
        Decorator registering a treatment function under ``treatment_id``.
        """
        def decorator(func: TreatmentFunc) -> TreatmentFunc:
            if treatment_id in self._treatments:
                logger.warning(f"Treatment '{treatment_id}' already registered, overwriting")
            self._treatments[treatment_id] = TreatmentDefinition(
                id=treatment_id,
                name=name or treatment_id,
                category=category,
                handler=func,
                aliases=[a.lower().strip() for a in aliases],
                description=description,
                examples=list(examples),
                geometries=list(geometries),
            )
            logger.debug(f"Registered treatment: {treatment_id}")
            return func
        return decorator

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, treatment_id: str) -> TreatmentDefinition:
        """
        Raises:
            UnknownTreatmentError: if the id is not registered
        """
        if treatment_id not in self._treatments:
            raise UnknownTreatmentError([treatment_id], self._treatments)
        return self._treatments[treatment_id]

    def has(self, treatment_id: str) -> bool:
        return treatment_id in self._treatments

    def list_ids(self) -> List[str]:
        return list(self._treatments)

    def get_by_category(self, category: str) -> List[TreatmentDefinition]:
        return [t for t in self._treatments.values() if t.category == category]

    def get_categories(self) -> List[str]:
        return list(dict.fromkeys(t.category for t in self._treatments.values()))

    def validate(self, treatment_ids: Iterable[str]) -> None:
        """
        Check every id before any stage runs.

        Raises:
            UnknownTreatmentError: listing all unknown ids
        """
        unknown = [tid for tid in treatment_ids if tid not in self._treatments]
        if unknown:
            raise UnknownTreatmentError(unknown, self._treatments)

    def find_by_alias(self, phrase: str) -> Optional[TreatmentMatch]:
        """
        Natural-language lookup ("zone tampon", "à moins de 500 m").

        Distance expressions resolve to ``buffer`` with suggested params;
        otherwise an exact alias, then a substring alias, is matched.
        """
        normalized = phrase.lower().strip()

        match = _DISTANCE_PATTERN.search(phrase)
        if match and self.has("buffer"):
            unit = "km" if match.group(2).lower().startswith("k") else "m"
            return TreatmentMatch(
                treatment=self._treatments["buffer"],
                suggested_params={"distance": int(match.group(1)), "unit": unit},
            )

        for treatment in self._treatments.values():
            if normalized == treatment.id or normalized in treatment.aliases:
                return TreatmentMatch(treatment=treatment)

        for treatment in self._treatments.values():
            for alias in treatment.aliases:
                if alias in normalized or normalized in alias:
                    return TreatmentMatch(treatment=treatment)
        return None

    def search(self, text: str) -> List[TreatmentDefinition]:
        """Treatments ranked by name (10), alias (5), description (3), example (2) matches."""
        needle = text.lower()
        scored = []
        for treatment in self._treatments.values():
            score = 0
            if needle in treatment.name.lower():
                score += 10
            if any(needle in a for a in treatment.aliases):
                score += 5
            if needle in treatment.description.lower():
                score += 3
            if any(needle in e.lower() for e in treatment.examples):
                score += 2
            if score:
                scored.append((score, treatment))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [t for _, t in scored]

    def get_suggestions(self, geometry_types: Optional[Iterable[str]] = None,
                        category: Optional[str] = None) -> List[TreatmentDefinition]:
        """Treatments compatible with the given geometry types and category."""
        types = set(geometry_types or ())
        suggestions = []
        for treatment in self._treatments.values():
            if types and treatment.geometries and not types & set(treatment.geometries):
                continue
            if category and treatment.category != category:
                continue
            suggestions.append(treatment)
        return suggestions

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def apply(self, spec: TreatmentSpec, data: FeatureSet) -> FeatureSet:
        """
        Run one treatment.

        Raises:
            UnknownTreatmentError: id not registered
            ContractViolationError: handler did not return a FeatureSet
        """
        treatment = self.get(spec.id)
        result = treatment.handler(spec.params, data)
        if not isinstance(result, FeatureSet):
            raise ContractViolationError(
                f"Treatment '{spec.id}' returned {type(result).__name__}, expected FeatureSet"
            )
        return result


# ============================================================================
# BUILT-IN TREATMENTS
# ============================================================================

def buffer_treatment(params: Dict[str, Any], data: FeatureSet) -> FeatureSet:
    """
    Mark features as buffered by ``params['distance']``.

    Geometry is left untouched; the host computes real buffers.
    ``_bufferUnit`` is only set when the params name a unit.
    """
    annotation = {"_buffered": True, "_bufferDistance": params.get("distance")}
    if params.get("unit") is not None:
        annotation["_bufferUnit"] = params["unit"]
    features = [{**feature, **annotation} for feature in data.features]
    return data.model_copy(update={
        "features": features,
        "treatment": "buffer",
        "treatment_params": dict(params),
    })


def passthrough_treatment(params: Dict[str, Any], data: FeatureSet) -> FeatureSet:
    return data


# (id, name, category, aliases, description, geometries)
_PASSTHROUGH_TREATMENTS = [
    ("area", "Aire", "measurement",
     ["aire", "surface", "superficie", "area", "calculer aire", "mesurer surface"],
     "Calcule la surface d'une géométrie", ["Polygon", "MultiPolygon"]),
    ("length", "Longueur", "measurement",
     ["longueur", "length", "calculer longueur", "mesurer longueur"],
     "Calcule la longueur d'une ligne", ["LineString", "MultiLineString"]),
    ("perimeter", "Périmètre", "measurement",
     ["périmètre", "perimeter", "pourtour", "calculer périmètre"],
     "Calcule le périmètre d'un polygone", ["Polygon", "MultiPolygon"]),
    ("distance_between", "Distance entre", "measurement",
     ["distance entre", "éloignement"],
     "Calcule la distance entre deux géométries", []),
    ("centroid", "Centroïde", "geometry",
     ["centroïde", "centre", "centroid", "point central", "milieu"],
     "Calcule le centre géométrique", []),
    ("simplify", "Simplifier", "geometry",
     ["simplifier", "simplify", "réduire points", "généraliser"],
     "Simplifie une géométrie (réduit le nombre de points)", ["LineString", "Polygon"]),
    ("envelope", "Enveloppe", "geometry",
     ["enveloppe", "rectangle englobant", "boîte englobante"],
     "Crée le rectangle englobant", []),
    ("convex_hull", "Enveloppe convexe", "geometry",
     ["enveloppe convexe", "convex hull", "coque convexe"],
     "Crée l'enveloppe convexe", []),
    ("union", "Union", "overlay",
     ["union", "fusionner", "combiner", "regrouper"],
     "Fusionne plusieurs géométries", []),
    ("intersection", "Intersection", "overlay",
     ["intersection", "partie commune", "zone commune"],
     "Trouve la partie commune entre géométries", []),
    ("difference", "Différence", "overlay",
     ["différence", "soustraction", "retirer", "enlever"],
     "Soustrait une géométrie d'une autre", []),
    ("sym_difference", "Différence symétrique", "overlay",
     ["différence symétrique", "parties non communes", "exclusion mutuelle"],
     "Trouve les parties non communes", []),
    ("within", "Dans", "spatial_query",
     ["contenu dans", "à l'intérieur de", "within"],
     "Vérifie si une géométrie est contenue dans une autre", []),
    ("contains", "Contient", "spatial_query",
     ["contient", "englobe", "contains"],
     "Vérifie si une géométrie en contient une autre", []),
    ("intersects", "Intersecte", "spatial_query",
     ["intersecte", "recoupe", "intersects"],
     "Vérifie si deux géométries s'intersectent", []),
    ("distance_query", "Requête de distance", "spatial_query",
     ["à distance de", "dans un rayon"],
     "Trouve les géométries dans un rayon donné", []),
    ("touches", "Touche", "spatial_query",
     ["adjacent", "contigu", "touches", "en contact avec"],
     "Vérifie si deux géométries se touchent", []),
    ("crosses", "Traverse", "spatial_query",
     ["traverse", "crosses"],
     "Vérifie si deux lignes se croisent", ["LineString", "MultiLineString"]),
    ("bbox", "Rectangle", "spatial_query",
     ["bbox", "zone rectangulaire"],
     "Sélection par rectangle englobant", []),
    ("transform_crs", "Reprojeter", "conversion",
     ["transformer", "convertir", "changer projection", "reprojeter"],
     "Change le système de coordonnées", []),
    ("to_geojson", "Vers GeoJSON", "conversion",
     ["vers geojson", "exporter geojson", "en geojson"],
     "Exporte en GeoJSON", []),
    ("to_wkt", "Vers WKT", "conversion",
     ["vers wkt", "exporter wkt", "en wkt"],
     "Exporte en WKT", []),
    ("is_valid", "Est valide", "validation",
     ["valide", "vérifier", "est valide", "check validity"],
     "Vérifie la validité d'une géométrie", []),
    ("make_valid", "Réparer", "validation",
     ["réparer", "corriger", "make valid"],
     "Répare une géométrie invalide", []),
    ("geometry_type", "Type de géométrie", "validation",
     ["quel type", "geometry type"],
     "Retourne le type de géométrie", []),
]


def register_builtin_treatments(registry: TreatmentRegistry) -> None:
    """Register buffer plus the pass-through treatment set."""
    registry.register(
        "buffer",
        name="Zone tampon",
        category="geometry",
        aliases=["tampon", "buffer", "zone tampon", "à moins de", "dans un rayon de", "périmètre de"],
        description="Crée une zone tampon autour d'une géométrie",
        examples=[
            "créer une zone tampon de 500m autour des écoles",
            "buffer de 1km autour de la commune",
            "à moins de 100m des routes",
        ],
    )(buffer_treatment)

    for treatment_id, name, category, aliases, description, geometries in _PASSTHROUGH_TREATMENTS:
        registry.register(
            treatment_id,
            name=name,
            category=category,
            aliases=aliases,
            description=description,
            geometries=geometries,
        )(passthrough_treatment)
