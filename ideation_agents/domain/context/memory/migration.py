"""Shape detection, legacy migration and seeding of agent memory.

Everything here is pure: callers fetch profiles and teams, these functions
only build ``AgentMemory`` values. ``migrate_legacy_memory`` is total; any
malformed legacy field degrades to a default.
"""

from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime

import structlog
from pydantic import ValidationError

from ideation_agents.domain.models.agent_state import AgentRole, utcnow
from ideation_agents.domain.models.memory import (
    ActionPlan, ActionRecord, AgentInfo, AgentMemory, ChatMessageRecord,
    ChatSession, CurrentMemory, InteractionRecord, LegacyAgentMemory,
    LegacyMemory, LongTermMemory, RelationEntry, RelationshipType,
    ShortTermMemory, StoredMemory, USER_RELATION_KEY, truncate_opinion
)
from ideation_agents.domain.models.team import AgentProfile, Team

logger = structlog.get_logger(__name__)

DEFAULT_TOPIC = "Carbon Emission Reduction"
MIGRATED_OPINION = "Relationship carried over from earlier memory."

_STRATEGIES = {
    "idea_generation": (
        AgentRole.GENERATE_IDEA,
        "Brainstorm innovative but feasible ideas that build on my expertise and the team topic.",
        "Idea generation is not my role; build on teammates' ideas when asked.",
    ),
    "idea_evaluation": (
        AgentRole.EVALUATE_IDEA,
        "Judge ideas fairly on insight, actionability and relevance, with concrete reasons.",
        "Evaluation is not my role; share impressions only when asked.",
    ),
    "feedback": (
        AgentRole.GIVE_FEEDBACK,
        "Give constructive, specific feedback that helps teammates improve their ideas.",
        "Feedback is not my role; keep comments brief and supportive.",
    ),
    "request": (
        AgentRole.MAKE_REQUEST,
        "Ask teammates for help clearly and politely, matching the request to their roles.",
        "Making requests is not my role; rely on the team leader to coordinate.",
    ),
}
_RESPONSE_STRATEGY = "Answer requests quickly and helpfully."
_PLANNING_STRATEGY = "Check what the team needs most before acting; prefer waiting over redundant work."


def default_action_plan(roles: Optional[Iterable[AgentRole]] = None) -> ActionPlan:
    """Seed strategies; categories outside the agent's roles get a deferring strategy.

    ``roles=None`` means the roles are unknown, so every category gets the
    active strategy.
    """
    held = set(roles) if roles is not None else None
    strategies: Dict[str, str] = {}
    for category, (role, active, deferring) in _STRATEGIES.items():
        strategies[category] = active if held is None or role in held else deferring
    strategies["response"] = _RESPONSE_STRATEGY
    strategies["planning"] = _PLANNING_STRATEGY
    return ActionPlan(**strategies)


def default_knowledge(profile: Optional[AgentProfile], team: Optional[Team], fallback_topic: str = DEFAULT_TOPIC) -> str:
    topic = (team.topic if team and team.topic else None) or fallback_topic
    text = f"We are running an ideation session on {topic}. The goal is to create and assess creative, practical ideas."
    if profile and profile.professional:
        text = f"I take part using my {profile.professional} expertise. " + text
    return text


def agent_info_from_profile(profile: AgentProfile) -> AgentInfo:
    return AgentInfo(
        id=profile.id,
        name=profile.name,
        professional=profile.professional,
        personality=profile.personality,
        skills=profile.skills
    )


def user_agent_info() -> AgentInfo:
    return AgentInfo(
        id=USER_RELATION_KEY,
        name="User",
        professional="Team leader",
        personality="Unknown",
        skills="Leadership"
    )


def create_agent_memory(
    agent_id: str,
    team: Team,
    profiles: Dict[str, AgentProfile],
    fallback_topic: str = DEFAULT_TOPIC
) -> AgentMemory:
    """Fresh memory for an agent joining ``team``, one relation per co-member.

    Co-members missing from ``profiles`` are skipped; consolidation creates
    their relation on first interaction.
    """
    own_profile = profiles.get(agent_id)
    own_name = own_profile.name if own_profile else agent_id

    relations: Dict[str, RelationEntry] = {}
    for member in team.members:
        if member.agent_id == agent_id:
            continue

        if member.is_user:
            key, info = USER_RELATION_KEY, user_agent_info()
        else:
            other = profiles.get(member.agent_id or "")
            if other is None:
                continue
            key, info = other.id, agent_info_from_profile(other)

        relationship = team.relationship_between(own_name, info.name)
        relations[key] = RelationEntry(
            agent_info=info,
            relationship_type=relationship or RelationshipType.AWKWARD
        )

    return AgentMemory(
        agent_id=agent_id,
        long_term=LongTermMemory(
            knowledge=default_knowledge(own_profile, team, fallback_topic),
            action_plan=default_action_plan(team.roles_of(agent_id) if team.get_member(agent_id) else None),
            relation=relations
        )
    )


def classify_memory_blob(blob: Any) -> Optional[StoredMemory]:
    """Tell current-shape blobs from legacy ones; None when neither fits"""

    if not isinstance(blob, dict):
        return None

    long_term = blob.get("longTerm")
    if not isinstance(long_term, dict):
        return None

    if all(key in long_term for key in ("knowledge", "actionPlan", "relation")):
        try:
            return CurrentMemory(memory=AgentMemory.model_validate(blob))
        except ValidationError as e:
            logger.warning("Current-shape memory failed validation", error=str(e))
            return None

    if "relations" in long_term or "self" in long_term:
        try:
            return LegacyMemory(memory=LegacyAgentMemory.model_validate(blob))
        except ValidationError as e:
            logger.warning("Legacy memory failed validation", error=str(e))
            return None

    return None


def _parse_timestamp(value: Any, default: datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return default
    return default


def _migrate_interactions(items: Any, now: datetime) -> List[InteractionRecord]:
    records = []
    if not isinstance(items, list):
        return records
    for item in items:
        if not isinstance(item, dict):
            continue
        records.append(InteractionRecord(
            timestamp=_parse_timestamp(item.get("timestamp"), now),
            action_item=str(item.get("action") or item.get("actionItem") or "interaction"),
            content=str(item.get("content") or "")
        ))
    return records


def _migrate_relation(key: str, raw: Any, now: datetime) -> Optional[RelationEntry]:
    if not isinstance(raw, dict):
        return None

    info_raw = raw.get("agentInfo")
    try:
        info = AgentInfo.model_validate(info_raw) if isinstance(info_raw, dict) else None
    except ValidationError:
        info = None
    if info is None:
        name = info_raw.get("name") if isinstance(info_raw, dict) else None
        info = AgentInfo(id=key, name=str(name or key))

    try:
        relationship = RelationshipType(raw.get("relationship"))
    except (ValueError, TypeError):
        relationship = RelationshipType.AWKWARD

    return RelationEntry(
        agent_info=info,
        relationship_type=relationship,
        interaction_history=_migrate_interactions(raw.get("interactionHistory"), now),
        my_opinion=truncate_opinion(raw.get("myOpinion")) or MIGRATED_OPINION
    )


def _migrate_chat(raw: Any) -> Optional[ChatSession]:
    if not isinstance(raw, dict) or not raw.get("sessionId"):
        return None
    messages = []
    raw_messages = raw.get("messages")
    for message in raw_messages if isinstance(raw_messages, list) else []:
        if isinstance(message, dict) and "content" in message:
            messages.append(ChatMessageRecord(
                sender=str(message.get("sender", "unknown")),
                content=str(message.get("content", ""))
            ))
    return ChatSession(
        session_id=str(raw["sessionId"]),
        target_agent_id=str(raw.get("targetAgentId") or ""),
        target_agent_name=str(raw.get("targetAgentName") or ""),
        chat_type="feedback_session",
        messages=messages
    )


def _migrate_last_action(raw: Any) -> Optional[ActionRecord]:
    if not isinstance(raw, dict) or not raw.get("type"):
        return None
    payload = raw.get("payload")
    return ActionRecord(
        type=str(raw["type"]),
        timestamp=_parse_timestamp(raw.get("timestamp"), utcnow()),
        payload=payload if isinstance(payload, dict) else {}
    )


def migrate_legacy_memory(
    agent_id: str,
    legacy: LegacyAgentMemory,
    profile: Optional[AgentProfile] = None,
    team: Optional[Team] = None,
    fallback_topic: str = DEFAULT_TOPIC
) -> AgentMemory:
    """Build current-shape memory from a legacy blob.

    Relations are converted field for field. Free-text self reflections are
    replaced by a default knowledge paragraph and the action plan is seeded
    from the agent's roles on ``team``.
    """
    now = utcnow()

    relations: Dict[str, RelationEntry] = {}
    raw_relations = legacy.long_term.get("relations")
    if isinstance(raw_relations, dict):
        for key, raw in raw_relations.items():
            entry = _migrate_relation(str(key), raw, now)
            if entry is not None:
                relations[str(key)] = entry

    roles = team.roles_of(agent_id) if team and team.get_member(agent_id) else None

    return AgentMemory(
        agent_id=agent_id,
        short_term=ShortTermMemory(
            action_history=_migrate_last_action(legacy.short_term.get("lastAction")),
            request_list=[],
            current_chat=_migrate_chat(legacy.short_term.get("feedbackSessionChat"))
        ),
        long_term=LongTermMemory(
            knowledge=default_knowledge(profile, team, fallback_topic),
            action_plan=default_action_plan(roles),
            relation=relations
        ),
        last_memory_update=now
    )
