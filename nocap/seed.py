from __future__ import annotations

from typing import Any, Dict, List

import bittensor as bt

from nocap.models import StoredFactRecord
from nocap.service import FactService


SAMPLE_FACTS: List[Dict[str, Any]] = [
    {
        "id": "galactic-ocean-1",
        "title": "Saturn's moon Enceladus contains hydrothermal vents",
        "summary": "Cassini data suggests warm hydrothermal activity consistent with silica nanoparticles found in plumes.",
        "fullContent": (
            "Cassini flybys detected silica nanoparticles in the plume of Enceladus. Their composition and size "
            "imply they formed in warm hydrothermal environments beneath the icy crust, suggesting liquid water "
            "pockets heated by tidal forces."
        ),
        "sources": ["https://saturn.jpl.nasa.gov/resources/7038/enceladus-hydrothermal-activity/"],
        "status": "verified",
        "author": "anon-4f8c",
        "votes": 1243,
        "comments": 89,
        "metadata": {
            "created": "2024-06-01T12:00:00+00:00",
            "updated": "2024-07-15T09:30:00+00:00",
            "version": 1,
            "contentType": "text/plain",
            "tags": ["space", "science"],
        },
    },
    {
        "id": "alpha-centauri-2",
        "title": "No confirmed exoplanets yet in Alpha Centauri",
        "summary": "A circulating blog post claims a discovery, but no peer-reviewed source currently corroborates it.",
        "fullContent": (
            "Despite frequent rumors, the closest verified detection is the Proxima Centauri b discovery in 2016. "
            "The Alpha Centauri AB system has ongoing radial velocity campaigns, but no statistically significant "
            "detection has been published."
        ),
        "sources": ["https://www.eso.org/public/news/eso1629/"],
        "status": "review",
        "author": "anon-a21e",
        "votes": 312,
        "comments": 45,
        "metadata": {
            "created": "2024-06-21T10:00:00+00:00",
            "updated": "2024-08-02T11:15:00+00:00",
            "version": 1,
            "contentType": "text/plain",
            "tags": ["space", "verification"],
        },
    },
    {
        "id": "bio-photosynthesis-3",
        "title": "Photosynthesis viability on low-light exoplanets is uncertain",
        "summary": "Claim under dispute; dependent on stellar spectrum and atmospheric composition assumptions.",
        "fullContent": (
            "Modeling indicates that a red dwarf spectrum shifts photon energy toward longer wavelengths. Some "
            "photosynthetic pathways might adapt, but maintaining Earth-like yields requires atmospheric "
            "transparency and slow stellar flare activity."
        ),
        "sources": ["https://iopscience.iop.org/article/10.3847/PSJ/aaf1a9"],
        "status": "flagged",
        "author": "anon-9921",
        "votes": 158,
        "comments": 23,
        "metadata": {
            "created": "2024-07-10T14:45:00+00:00",
            "updated": "2024-07-26T08:20:00+00:00",
            "version": 1,
            "contentType": "text/plain",
            "tags": ["biology", "space"],
        },
    },
]


async def seed_sample_facts(service: FactService) -> List[StoredFactRecord]:
    """Store the sample facts unless the fact store already holds any."""
    if len(service.facts):
        bt.logging.info(f"Fact store already holds {len(service.facts)} facts; not seeding.")
        return []
    stored = [await service.create_fact(dict(sample)) for sample in SAMPLE_FACTS]
    bt.logging.info(f"Seeded {len(stored)} sample facts")
    return stored
