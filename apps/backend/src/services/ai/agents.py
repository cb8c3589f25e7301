"""AI agents for setlist generation."""

import logging

from pydantic_ai import Agent
from pydantic_ai.models import Model

from schemas.generation import (
    GeneratedSetlist,
    GenerationConstraints,
    GenerationRequest,
    ProviderId,
    TrackSkeleton,
)
from services.ai.exceptions import (
    EmptyTrackList,
    GenerationFailure,
    ProviderError,
)
from services.ai.model_factory import get_provider_model


logger = logging.getLogger(__name__)


SETLIST_SYSTEM_PROMPT = """
You are a DJ curator. Generate an ordered playlist for the requested set.

Each track has:
- title and artist (required, real released recordings only)
- key: musical key such as "Am" or "F#"
- genre
- energy: 1-100 intensity
- duration_seconds
- reasoning: one sentence on why the track fits at this position

Order the tracks the way they should be played. Do not repeat a track.
"""

DECADE_RANGES: dict[str, str] = {
    "80s": "1980-1989",
    "90s": "1990-1999",
    "00s": "2000-2009",
    "10s": "2010-2019",
    "20s": "2020-present",
}


def build_constraint_instructions(constraints: GenerationConstraints) -> str:
    """Render request constraints as instruction lines for the model."""
    instructions: list[str] = []

    if constraints.artist_diversity is not None and constraints.artist_diversity > 70:
        instructions.append(
            "ARTIST SELECTION: Use a different artist for each track. "
            "Maximize variety."
        )

    # All five decades selected means no era preference
    if 0 < len(constraints.active_decades) < len(DECADE_RANGES):
        ranges = ", ".join(DECADE_RANGES.get(d, d) for d in constraints.active_decades)
        instructions.append(f"ERA PREFERENCE: Focus on tracks from: {ranges}")

    if constraints.discovery is not None:
        if constraints.discovery < 30:
            instructions.append("TRACK SELECTION: Prioritize well-known hits.")
        elif constraints.discovery > 70:
            instructions.append(
                "TRACK SELECTION: Prioritize deep cuts and obscure selections."
            )

    if constraints.denylist:
        instructions.append(
            f"EXCLUSIONS: DO NOT include: {', '.join(constraints.denylist)}"
        )

    if constraints.avoid_explicit:
        instructions.append("CONTENT: Only include clean, non-explicit tracks.")

    return "\n".join(instructions)


def build_user_prompt(request: GenerationRequest) -> str:
    energy = request.constraints.energy_range
    prompt = (
        f"{request.track_count} track set: {request.prompt}. "
        f"Energy: {energy.min}-{energy.max}"
    )
    constraint_text = build_constraint_instructions(request.constraints)
    if constraint_text:
        prompt = f"{prompt}\n\nConstraints:\n{constraint_text}"
    return prompt


def create_setlist_agent(model: Model) -> Agent[None, GeneratedSetlist]:
    """Create a pydantic-ai agent producing a structured setlist."""
    return Agent(
        model,
        system_prompt=SETLIST_SYSTEM_PROMPT,
        output_type=GeneratedSetlist,
        retries=1,
    )


def to_skeletons(setlist: GeneratedSetlist, track_count: int) -> list[TrackSkeleton]:
    """Index the agent output, keeping at most `track_count` tracks."""
    return [
        TrackSkeleton(index=i, **track.model_dump())
        for i, track in enumerate(setlist.tracks[:track_count])
    ]


class PydanticAITrackGenerator:
    """Track generator backed by one provider's pydantic-ai model.

    The model is built lazily on first use so an unconfigured provider fails
    inside its own race task rather than at construction.
    """

    def __init__(self, provider: ProviderId, model: Model | None = None) -> None:
        self.provider = provider
        self._model = model

    async def generate(self, request: GenerationRequest) -> list[TrackSkeleton]:
        if self._model is None:
            self._model = get_provider_model(self.provider)
        agent = create_setlist_agent(self._model)

        try:
            result = await agent.run(build_user_prompt(request))
        except ProviderError:
            raise
        except Exception as e:
            logger.warning("Provider %s generation failed: %s", self.provider, e)
            raise GenerationFailure(str(e) or type(e).__name__) from e

        tracks = to_skeletons(result.output, request.track_count)
        if not tracks:
            raise EmptyTrackList()
        return tracks
