"""Domain personas and the prompt builder.

One deployment serves one persona. The built-in personas cover the
education, finance, healthcare and legal assistants; more can be loaded
from a YAML file of the form::

    personas:
      retail:
        system_prompt: "You are a helpful retail assistant..."
        max_tokens: 400
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from guardrail_relay.errors import ConfigurationError
from guardrail_relay.models import ChatMessage, MediationEnvelope

DEFAULT_MAX_TOKENS = 500


@dataclass(frozen=True)
class Persona:
    """A domain persona: the fixed system prompt and generation limits."""

    name: str
    system_prompt: str
    max_tokens: Optional[int] = DEFAULT_MAX_TOKENS

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Persona":
        """Create a Persona from a dictionary (YAML-parsed)."""
        system_prompt = data.get("system_prompt")
        if not isinstance(system_prompt, str) or not system_prompt.strip():
            raise ConfigurationError(
                "Persona '{}' must define a non-empty system_prompt".format(name)
            )
        max_tokens = data.get("max_tokens", DEFAULT_MAX_TOKENS)
        if max_tokens is not None and (
            not isinstance(max_tokens, int) or isinstance(max_tokens, bool) or max_tokens <= 0
        ):
            raise ConfigurationError(
                "Persona '{}' has invalid max_tokens: {!r}".format(name, max_tokens)
            )
        return cls(name=name, system_prompt=system_prompt.strip(), max_tokens=max_tokens)


BUILTIN_PERSONAS: Dict[str, Persona] = {
    "education": Persona(
        name="education",
        system_prompt=(
            "You are a helpful educational tutor. Help students learn and "
            "understand concepts.\n\n"
            "IMPORTANT RULES:\n"
            "- NEVER complete homework assignments for students\n"
            "- Guide students to find answers themselves through questions\n"
            "- Explain concepts clearly with examples\n"
            "- Encourage critical thinking\n"
            "- Do not provide direct answers to test/exam questions"
        ),
    ),
    "finance": Persona(
        name="finance",
        system_prompt=(
            "You are a helpful banking assistant. Provide general information "
            "about banking services, account types, and financial products.\n\n"
            "IMPORTANT SECURITY RULES:\n"
            "- NEVER share or generate credit card numbers, CVV codes, or account numbers\n"
            "- NEVER provide specific investment advice or stock recommendations\n"
            "- NEVER help with money laundering or fraudulent activities\n"
            "- Always recommend users contact their bank directly for "
            "account-specific issues\n"
            "- Provide general educational content only"
        ),
    ),
    "healthcare": Persona(
        name="healthcare",
        system_prompt=(
            "You are a helpful healthcare assistant. Provide information about "
            "general health topics. You MUST NOT provide medical diagnosis or "
            "treatment advice."
        ),
    ),
    "legal": Persona(
        name="legal",
        system_prompt=(
            "You are a helpful legal document assistant. Provide general "
            "information about legal concepts and document preparation.\n\n"
            "IMPORTANT RULES:\n"
            "- NEVER provide specific legal advice or opinions on ongoing cases\n"
            "- NEVER draft binding legal documents without proper disclaimers\n"
            "- Always recommend users consult with a licensed attorney\n"
            "- Provide general educational content about legal processes\n"
            "- Help with document organization and general formatting guidance"
        ),
    ),
}


def load_personas(path: Union[str, Path]) -> Dict[str, Persona]:
    """Load extra personas from a YAML file.

    Args:
        path: Path to the YAML persona file.

    Returns:
        Mapping of persona name to Persona.

    Raises:
        ConfigurationError: If the file is missing or malformed.
    """
    persona_path = Path(path)
    if not persona_path.exists():
        raise ConfigurationError("Persona file not found: {}".format(path))

    with open(persona_path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                "Persona file {} is not valid YAML: {}".format(path, exc)
            ) from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("personas"), dict):
        raise ConfigurationError(
            "Persona file must contain a 'personas' mapping at the top level"
        )

    personas: Dict[str, Persona] = {}
    for name, data in raw["personas"].items():
        if not isinstance(data, dict):
            raise ConfigurationError("Persona '{}' must be a mapping".format(name))
        key = str(name).strip().lower()
        personas[key] = Persona.from_dict(key, data)
    return personas


def get_persona(
    name: str, extra: Optional[Mapping[str, Persona]] = None
) -> Persona:
    """Resolve the deployment persona by name.

    Personas from ``extra`` override built-ins of the same name.

    Raises:
        ConfigurationError: If no persona has that name.
    """
    available: Dict[str, Persona] = dict(BUILTIN_PERSONAS)
    if extra:
        available.update(extra)

    key = (name or "").strip().lower()
    persona = available.get(key)
    if persona is None:
        raise ConfigurationError(
            "Unknown domain persona '{}'. Available personas: {}".format(
                name, ", ".join(sorted(available))
            )
        )
    return persona


def build_messages(persona: Persona, user_message: str) -> List[ChatMessage]:
    """Build the system + user message pair for a persona.

    The user message is passed through unmodified; sanitization is the
    gateway's job.
    """
    return [
        ChatMessage(role="system", content=persona.system_prompt),
        ChatMessage(role="user", content=user_message),
    ]


def build_envelope(persona: Persona, user_message: str, model: str) -> MediationEnvelope:
    """Build the outbound envelope for a chat message."""
    return MediationEnvelope(
        messages=build_messages(persona, user_message),
        model=model,
        max_tokens=persona.max_tokens,
    )
