# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Inline AI code completion engine for text editors.

Selects a syntax-aware editable region around the cursor, builds a
fill-in-the-middle prompt, streams a rewrite from the completion endpoint
and shows the newly generated span as ghost text that can be accepted
fully, by line or by word. Completions are also prefetched at diagnostic
locations.

Example usage:
    from amptab import AmpTabConfig, AmpTabEngine

    config = AmpTabConfig.from_options({"preload_debounce_ms": 1000})
    engine = AmpTabEngine(host, overlay, config=config, diagnostics=diagnostics)

    # Request a completion at the cursor
    engine.trigger(lambda shown: print("shown" if shown else "no suggestion"))

    # Accept it as a whole, or piece by piece
    engine.accept_word()
    engine.accept_line()
    engine.accept()

    # Jump between diagnostics
    engine.next_diagnostic()
"""

from amptab.protocol import (
    AmpTabContext,
    CachedCompletion,
    CompletionRequest,
    CompletionSource,
    Diagnostic,
    DiagnosticSeverity,
    EditableRegion,
    EnrichmentBundle,
    Position,
    Range,
    RegionStrategy,
)
from amptab.config import AmpTabConfig, ClientConfig, TokenLimits
from amptab.errors import AmpTabError, ApplyEditError, ConfigurationError
from amptab.region import RegionSelector
from amptab.enrichment import EnrichmentTracker
from amptab.context import ContextBuilder
from amptab.client import CompletionHandle, StreamingClient
from amptab.extractor import clean_completion, extract_display_text
from amptab.ghost import GhostState, GhostTextRenderer
from amptab.cache import CacheStatus, CompletionCache
from amptab.preloader import Preloader
from amptab.navigator import Navigator, VisitedSet
from amptab.engine import AmpTabEngine, EngineMetrics

__all__ = [
    # Protocol types
    "AmpTabContext",
    "CachedCompletion",
    "CompletionRequest",
    "CompletionSource",
    "Diagnostic",
    "DiagnosticSeverity",
    "EditableRegion",
    "EnrichmentBundle",
    "Position",
    "Range",
    "RegionStrategy",
    # Configuration and errors
    "AmpTabConfig",
    "ClientConfig",
    "TokenLimits",
    "AmpTabError",
    "ApplyEditError",
    "ConfigurationError",
    # Pipeline
    "RegionSelector",
    "EnrichmentTracker",
    "ContextBuilder",
    "CompletionHandle",
    "StreamingClient",
    "clean_completion",
    "extract_display_text",
    "GhostState",
    "GhostTextRenderer",
    "CacheStatus",
    "CompletionCache",
    "Preloader",
    "Navigator",
    "VisitedSet",
    # Engine
    "AmpTabEngine",
    "EngineMetrics",
]
