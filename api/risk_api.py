import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from api.models import FavoriteToggleRequest, NarrativeResponse
from backend.brands import BrandProfile, get_brand
from backend.dataset import InteractionDataset, load_dataset
from backend.favorites import FavoritesStore, remove_favorite, toggle_favorite
from backend.narrative import GeminiNarrator, NarrativeService, TextGenerator
from backend.resolver import InteractionResolver

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="EntheoGen Interaction API",
    description="Harm-reduction interaction lookups for ceremonial substances and medications",
    version="0.2.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global state, populated by ``load_data``
BRAND: Optional[BrandProfile] = None
DATASET: Optional[InteractionDataset] = None
RESOLVER: Optional[InteractionResolver] = None
NARRATIVE: Optional[NarrativeService] = None
FAVORITES: Optional[FavoritesStore] = None


def load_data(brand_key: Optional[str] = None) -> None:
    """Load the brand's dataset and wire the services around it.

    Integrity problems in the data files raise here, so a broken dataset stops
    the app at startup instead of failing individual requests.
    """
    global BRAND, DATASET, RESOLVER, NARRATIVE, FAVORITES

    BRAND = get_brand(brand_key)
    DATASET = load_dataset(BRAND.data_dir)
    RESOLVER = InteractionResolver(DATASET)
    NARRATIVE = NarrativeService(RESOLVER, GeminiNarrator.from_environment())
    FAVORITES = FavoritesStore(
        os.getenv("ENTHEOGEN_STATE_DIR"),
        key=BRAND.favorites_key,
        legacy_keys=BRAND.legacy_favorites_keys,
    )
    logger.info("Serving brand %s from %s", BRAND.title, BRAND.data_dir)


def set_narrative_generator(generator: Optional[TextGenerator]) -> None:
    """Swap the text generator (tests use offline fakes)."""
    global NARRATIVE
    NARRATIVE = NarrativeService(RESOLVER, generator)


def set_favorites_store(store: FavoritesStore) -> None:
    global FAVORITES
    FAVORITES = store


# Load data on startup
load_data()

# Helper functions


def _require_substance(substance_id: str) -> str:
    ident = substance_id.strip()
    if not ident or DATASET.find_substance(ident) is None:
        raise HTTPException(status_code=404, detail=f"Substance not found: {substance_id}")
    return ident


def _narrative_payload(result) -> Dict[str, Any]:
    return NarrativeResponse(**result.to_dict()).model_dump()


# API Routes
@app.get("/api/health")
def health():
    """Health check endpoint."""
    generator = NARRATIVE.generator if NARRATIVE else None
    return {
        "status": "healthy",
        "brand": BRAND.key,
        "title": BRAND.title,
        "dataset": DATASET.name,
        "substances_loaded": len(DATASET.list_substances()),
        "interactions_loaded": DATASET.interaction_count,
        "narrative_enabled": bool(getattr(generator, "available", generator is not None)),
    }


@app.get("/api/substances")
def list_substances(
    q: Optional[str] = Query(None, description="Name, class or mechanism fragment"),
    limit: int = Query(50, ge=1, le=100),
):
    """List the catalogue, or search it when ``q`` is given."""
    if q and q.strip():
        substances = DATASET.search_substances(q, limit=limit)
    else:
        substances = DATASET.list_substances()[:limit]
    return {"substances": [s.to_dict() for s in substances]}


@app.get("/api/substances/{substance_id}")
def get_substance(substance_id: str):
    substance = DATASET.find_substance(substance_id)
    if substance is None:
        raise HTTPException(status_code=404, detail="Substance not found")
    return substance.to_dict()


@app.get("/api/legend")
def legend():
    """Legend ordered by severity, with the guidance sentence for each code."""
    entries: List[Dict[str, Any]] = []
    for entry in DATASET.legend_entries():
        record = entry.to_dict()
        record["action"] = RESOLVER.action_for(entry.severity_rank)
        entries.append(record)
    return {"legend": entries}


@app.get("/api/interaction")
def interaction(a: str, b: str):
    """Resolve a pair and return its classification and evidence readout."""
    a_id = _require_substance(a)
    b_id = _require_substance(b)
    found = RESOLVER.lookup(a_id, b_id)
    return {
        "interaction": found.to_dict(),
        "readout": RESOLVER.readout(a_id, b_id),
    }


@app.get("/api/interaction/explain")
def explain_interaction(a: str, b: str):
    """Generated explanation for a pair, falling back to the evidence readout."""
    a_id = _require_substance(a)
    b_id = _require_substance(b)
    return _narrative_payload(NARRATIVE.explain(a_id, b_id))


@app.get("/api/summary")
def summary(a: str, b: Optional[str] = None):
    """Profile of one substance, or a combined profile of a pair."""
    a_id = _require_substance(a)
    b_id = _require_substance(b) if b else None
    return _narrative_payload(NARRATIVE.summarize(a_id, b_id))


@app.get("/api/favorites")
def list_favorites():
    return {"favorites": [entry.model_dump() for entry in FAVORITES.load()]}


@app.post("/api/favorites/toggle")
def toggle_favorite_pair(payload: FavoriteToggleRequest):
    """Add the pair to favorites, or remove it if already saved."""
    a_id = _require_substance(payload.drug1)
    b_id = _require_substance(payload.drug2)
    if a_id == b_id:
        raise HTTPException(status_code=400, detail="A substance cannot be paired with itself")
    evidence = RESOLVER.resolve(a_id, b_id)

    current = FAVORITES.load()
    updated = toggle_favorite(current, a_id, b_id, evidence.code)
    FAVORITES.save(updated)
    favorited = len(updated) > len(current)
    return {
        "favorited": favorited,
        "favorites": [entry.model_dump() for entry in updated],
    }


@app.delete("/api/favorites/{favorite_id}")
def delete_favorite(favorite_id: str):
    current = FAVORITES.load()
    updated = remove_favorite(current, favorite_id)
    if len(updated) == len(current):
        raise HTTPException(status_code=404, detail="Favorite not found")
    FAVORITES.save(updated)
    return {"favorites": [entry.model_dump() for entry in updated]}
