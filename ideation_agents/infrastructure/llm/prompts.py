"""Prompt builders for the decision oracle.

Each builder turns domain objects into a single user prompt that asks for a
strict JSON answer (or plain text for opinions).
"""

from typing import List, Optional, Sequence

from ideation_agents.domain.context.context_manager import PlanningContext
from ideation_agents.domain.models.memory import AgentMemory, MemoryEvent, RelationEntry, OPINION_MAX_LENGTH
from ideation_agents.domain.models.oracle import TeammateBrief
from ideation_agents.domain.models.team import AgentProfile, Idea


def persona_system_prompt(profile: AgentProfile) -> str:
    text = f"You are {profile.name}"
    if profile.age:
        text += f", a {profile.age}-year-old {profile.professional or 'professional'}"
    elif profile.professional:
        text += f", a {profile.professional}"
    text += "."
    if profile.personality:
        text += f" Your personality: {profile.personality}."
    if profile.skills:
        text += f" Your skills: {profile.skills}."
    if profile.value:
        text += f" You value: {profile.value}."
    return text + " Stay in character and answer only in the requested format."


def _bullets(lines: Sequence[str], empty: str = "(none)") -> str:
    return "\n".join(f"- {line}" for line in lines) if lines else empty


def planning_prompt(context: PlanningContext) -> str:
    ideas = [f"#{i.idea_number} by {i.author_name}: {i.object} - {i.function}" for i in context.existing_ideas]
    teammates = [f"{t.name} ({t.id}) roles: {', '.join(t.roles) or 'none'}" for t in context.teammates]
    plan_lines = [f"{k}: {v}" for k, v in context.action_plan.items() if v]

    return f"""Team "{context.team_name}" is ideating on: {context.topic}
Shared mental model: {context.shared_mental_model or '(none)'}

Your roles: {', '.join(r.value for r in context.roles) or 'none'}
Your knowledge: {context.knowledge or '(none)'}
Your strategies:
{_bullets(plan_lines)}

Teammates:
{_bullets(teammates)}

Existing ideas ({context.current_ideas_count}):
{_bullets(ideas)}

Recent messages:
{_bullets(context.recent_messages)}

Decide your next action. Choose one of: generate_idea, evaluate_idea, give_feedback, make_request, wait.
Only choose actions covered by your roles. Use "target" for the teammate id a feedback or request is aimed at.

Respond with JSON only:
{{"action": "...", "reasoning": "...", "target": "optional teammate id"}}"""


def knowledge_prompt(profile: AgentProfile, memory: AgentMemory, events: Sequence[MemoryEvent]) -> str:
    plan = memory.long_term.action_plan
    return f"""You are {profile.name} ({profile.professional}; skills: {profile.skills}; personality: {profile.personality or 'unknown'}).

Current knowledge:
{memory.long_term.knowledge}

Current strategies:
- idea_generation: {plan.idea_generation}
- idea_evaluation: {plan.idea_evaluation}
- feedback: {plan.feedback}
- request: {plan.request}
- response: {plan.response}
- planning: {plan.planning}

Recent interactions:
{chr(10).join(event.render() for event in events)}

If these interactions taught you something about the ideation, add it to your knowledge.
Improve any strategy that would help you act better next time.

Respond with JSON only:
{{"knowledge": "updated knowledge", "actionPlan": {{"idea_generation": "...", "idea_evaluation": "...", "feedback": "...", "request": "...", "response": "...", "planning": "..."}}}}"""


def opinion_prompt(relation: RelationEntry, events: Sequence[MemoryEvent]) -> str:
    info = relation.agent_info
    return f"""Update your opinion of your teammate "{info.name}".

About them: {info.professional or 'unknown expertise'}
Relationship: {relation.relationship_type.value}

Current opinion:
{relation.my_opinion}

Recent interactions:
{chr(10).join(event.render(with_timestamp=False) for event in events)}

Write the updated opinion in at most {OPINION_MAX_LENGTH} characters. Reply with the opinion only."""


def idea_generation_prompt(
    topic: str,
    existing_ideas: Sequence[Idea],
    knowledge: Optional[str],
    strategy: Optional[str],
    request_message: Optional[str] = None
) -> str:
    ideas = [f"{idea.content.object}: {idea.content.function}" for idea in existing_ideas]
    request_line = f"\nA teammate asked: {request_message}\n" if request_message else ""
    return f"""Topic: {topic}
Your knowledge: {knowledge or '(none)'}
Your idea generation strategy: {strategy or '(none)'}
{request_line}
Ideas already on the board:
{_bullets(ideas)}

Propose one new idea that does not duplicate the board.

Respond with JSON only:
{{"object": "what it is", "function": "what it does", "behavior": "how it behaves", "structure": "how it is built"}}"""


def evaluation_prompt(idea: Idea, knowledge: Optional[str], strategy: Optional[str]) -> str:
    return f"""Your knowledge: {knowledge or '(none)'}
Your evaluation strategy: {strategy or '(none)'}

Idea to evaluate:
- object: {idea.content.object}
- function: {idea.content.function}
- behavior: {idea.content.behavior}
- structure: {idea.content.structure}

Score it from 1 to 5 on insightful, actionable and relevance, and add a short comment.

Respond with JSON only:
{{"insightful": 1, "actionable": 1, "relevance": 1, "comment": "..."}}"""


def feedback_prompt(target_name: str, ideas: Sequence[Idea], strategy: Optional[str]) -> str:
    ideas_text = [f"{idea.content.object}: {idea.content.function}" for idea in ideas]
    return f"""Your feedback strategy: {strategy or '(none)'}

Give {target_name} constructive feedback on their contributions.
Their ideas:
{_bullets(ideas_text)}

Respond with JSON only:
{{"message": "your feedback"}}"""


def request_prompt(teammates: List[TeammateBrief], strategy: Optional[str], ideas_count: int) -> str:
    lines = [f"{t.name} ({t.id}) roles: {', '.join(t.roles) or 'none'}" for t in teammates]
    return f"""Your request strategy: {strategy or '(none)'}
The board has {ideas_count} ideas.

Teammates:
{_bullets(lines)}

Ask one teammate to either generate_idea or evaluate_idea, matching their roles.

Respond with JSON only:
{{"targetAgentId": "teammate id", "requestType": "generate_idea or evaluate_idea", "message": "your request"}}"""
