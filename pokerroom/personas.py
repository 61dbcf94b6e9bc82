"""Catalog of simulated teammates."""

from dataclasses import dataclass

from .models import Participant, ParticipantKind

AVATAR_URL_TEMPLATE = "https://picsum.photos/100/100?random={seed}"


@dataclass(frozen=True)
class Persona:
    """A simulated teammate the oracle role-plays."""

    id: str
    name: str
    role: str
    avatar_seed: str
    description: str

    def to_participant(self) -> Participant:
        return Participant(
            id=self.id,
            name=self.name,
            kind=ParticipantKind.SIMULATED,
            avatar_ref=avatar_ref(self.avatar_seed),
            persona=self.description,
        )


def avatar_ref(seed: str) -> str:
    return AVATAR_URL_TEMPLATE.format(seed=seed)


PERSONAS: tuple[Persona, ...] = (
    Persona(
        id="ai-senior",
        name="Sarah (Senior Dev)",
        role="Senior Full Stack Engineer",
        avatar_seed="sarah",
        description="Cautious, considers technical debt and edge cases. Tends to estimate higher.",
    ),
    Persona(
        id="ai-junior",
        name="Mike (Junior Dev)",
        role="Junior Frontend Developer",
        avatar_seed="mike",
        description="Optimistic, focuses on the happy path. Tends to estimate lower.",
    ),
    Persona(
        id="ai-qa",
        name="Alex (QA Lead)",
        role="QA Automation Engineer",
        avatar_seed="alex",
        description="Focuses on testing complexity and potential bugs. Moderate to high estimates.",
    ),
    Persona(
        id="ai-pm",
        name="Jessica (Product)",
        role="Product Manager",
        avatar_seed="jessica",
        description="Focuses on business value, sometimes underestimates technical complexity.",
    ),
)


def find_persona(persona_id: str, catalog: tuple[Persona, ...] = PERSONAS) -> Persona | None:
    for persona in catalog:
        if persona.id == persona_id:
            return persona
    return None
