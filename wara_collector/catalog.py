import io
import json
import logging
import os
from typing import Any, Dict, List, Optional, Set

import pandas as pd
import requests
from rich.console import Console

from .config import (
    RECOMMENDATIONS_URL,
    SPECIAL_TYPES_URL,
    ADVISOR_METADATA_URL,
    ADVISOR_METADATA_API_VERSION,
    ARM_SCOPE,
    DOWNLOAD_TIMEOUT_SECONDS,
)
from .models import AdvisorMetadata, RecommendationDefinition

_console = Console()


class CatalogError(RuntimeError):
    """Raised when the APRL catalog or the special-types list cannot be loaded."""


def _download(url: str, logger: logging.Logger) -> requests.Response:
    logger.debug(f"Downloading {url}")
    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        raise CatalogError(f"Could not download {url}: {e}") from e
    if response.status_code != 200:
        raise CatalogError(f"Download of {url} failed with status {response.status_code}: {response.text[:200]}")
    return response

# --- APRL Recommendations ---

def parse_recommendations(entries: List[Dict[str, Any]]) -> List[RecommendationDefinition]:
    """Turns raw catalog entries into RecommendationDefinitions, skipping ones without a guid."""
    logger = logging.getLogger()
    catalog = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get('aprlGuid'):
            logger.debug(f"Skipping catalog entry without aprlGuid: {entry!r:.120}")
            continue
        catalog.append(RecommendationDefinition.from_catalog_entry(entry))
    return catalog

def load_recommendations(source: Optional[str] = None, console: Console = _console) -> List[RecommendationDefinition]:
    """Loads the APRL catalog from a local JSON file or, by default, the published recommendations.json."""
    logger = logging.getLogger()
    source = source or RECOMMENDATIONS_URL
    with console.status(f"[cyan]Loading APRL recommendations from {source}...[/]"):
        if os.path.exists(source):
            try:
                with open(source, 'r', encoding='utf-8') as f:
                    entries = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise CatalogError(f"Could not read recommendations file {source}: {e}") from e
        else:
            try:
                entries = _download(source, logger).json()
            except ValueError as e:
                raise CatalogError(f"Recommendations from {source} are not valid JSON: {e}") from e

    if not isinstance(entries, list):
        raise CatalogError(f"Expected a list of recommendations from {source}, got {type(entries).__name__}.")

    catalog = parse_recommendations(entries)
    logger.info(f"Loaded {len(catalog)} APRL recommendations from {source}")
    console.print(f":white_check_mark: Loaded {len(catalog)} APRL recommendations.")
    return catalog

# --- In-scope Resource Types ---

def parse_special_types(frame: pd.DataFrame) -> Set[str]:
    """Resource types flagged as covered by neither APRL nor Advisor (lower-cased)."""
    required = {'ResourceType', 'InAprlAndOrAdvisor'}
    missing = required - set(frame.columns)
    if missing:
        raise CatalogError(f"Resource types list is missing column(s): {', '.join(sorted(missing))}")
    flags = frame['InAprlAndOrAdvisor'].astype(str).str.strip().str.lower()
    types = frame.loc[flags == 'no', 'ResourceType'].dropna().astype(str).str.strip().str.lower()
    return {t for t in types if t}

def load_special_types(source: Optional[str] = None, console: Console = _console) -> Set[str]:
    """Loads WARAinScopeResTypes.csv from a local path or the APRL repository."""
    logger = logging.getLogger()
    source = source or SPECIAL_TYPES_URL
    with console.status(f"[cyan]Loading in-scope resource types from {source}...[/]"):
        try:
            if os.path.exists(source):
                frame = pd.read_csv(source)
            else:
                frame = pd.read_csv(io.StringIO(_download(source, logger).text))
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise CatalogError(f"Could not parse resource types list {source}: {e}") from e

    special_types = parse_special_types(frame)
    logger.info(f"Loaded {len(special_types)} resource types without APRL/Advisor coverage from {source}")
    return special_types

# --- Advisor Metadata ---

def parse_advisor_metadata(payload: Dict[str, Any]) -> List[AdvisorMetadata]:
    """Extracts (id, category) pairs from the 'recommendationType' metadata entity."""
    metadata = []
    for entity in payload.get('value', []):
        if (entity.get('name') or '').lower() != 'recommendationtype':
            continue
        for value in (entity.get('properties') or {}).get('supportedValues', []):
            if value.get('id'):
                metadata.append(AdvisorMetadata(id=value['id'], recommendation_category=value.get('category') or ''))
    return metadata

def fetch_advisor_metadata(credential, console: Console = _console) -> List[AdvisorMetadata]:
    """Fetches Advisor recommendation metadata from ARM. Returns [] on failure."""
    logger = logging.getLogger()
    try:
        token = credential.get_token(ARM_SCOPE).token
        with console.status("[cyan]Fetching Advisor metadata...[/]"):
            response = requests.get(
                ADVISOR_METADATA_URL,
                params={'api-version': ADVISOR_METADATA_API_VERSION},
                headers={'Authorization': f"Bearer {token}"},
                timeout=DOWNLOAD_TIMEOUT_SECONDS,
            )
        if response.status_code != 200:
            logger.warning(f"Advisor metadata request failed with status {response.status_code}: {response.text[:200]}")
            console.print(f"  [yellow]Warning:[/] Advisor metadata unavailable (HTTP {response.status_code}).")
            return []
        metadata = parse_advisor_metadata(response.json())
        logger.info(f"Fetched {len(metadata)} Advisor recommendation type(s).")
        return metadata
    except Exception as e:
        logger.error(f"Error fetching Advisor metadata: {e}", exc_info=True)
        console.print(f"  [bold red]Error fetching Advisor metadata:[/] {e}")
        return []
