"""
Correlator agent: groups activities from different tools that describe the
same piece of work.

Candidate links are found deterministically. The model only confirms or
rejects candidate groups and names their theme; it never adds members.
"""

import json
import re
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from itertools import combinations

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import NormalizedActivity
from app.models.domain.credential_domain import ProviderType
from app.models.domain.session_domain import (
    ActivityCategory,
    ActivityClassification,
    AnalysisArtifact,
    CorrelationArtifact,
    CorrelationGroup,
)
from app.services.ai.llm_client import LLMClient
from app.services.ai.model_selector import ModelHandle
from app.services.pipeline.base import AgentOutput, InvalidArtifactError, parse_json_object
from app.services.pipeline.prompts import CORRELATOR_SYSTEM_MESSAGE

logger = get_logger(__name__)

REFERENCE_CONFIDENCE = 0.95
TIME_KEYWORD_CONFIDENCE = 0.75
TIME_WINDOW = timedelta(hours=2)
MIN_SHARED_KEYWORDS = 2

TICKET_KEY_RE = re.compile(r"\b([A-Z][A-Z0-9]+)-\d+\b")
REPO_REF_RE = re.compile(r"\b[\w.-]+/[\w.-]+#\d+\b")
URL_RE = re.compile(r"https?://[^\s<>\"')\]]+")
WORD_RE = re.compile(r"[a-z0-9]+")

# Key-shaped tokens naming encodings, hashes, standards and protocols
NON_TICKET_PREFIXES = frozenset(
    """
    AES CVE ECMA ES GMT GPT HTTP IEC IEEE IPV ISO MD PEP RFC RSA SHA SSL TLS UTC UTF X
    """.split()
)

STOPWORDS = frozenset(
    """
    about after again also amp and been before being both between could does doing done
    during each from have having here into just like made make more most much need only
    other over same should some still such than that their them then there these they
    this those through under until very were what when where which while will with
    would your update updated updates merge merged branch main master review meeting
    sync chat message comment fix fixes fixed
    """.split()
)


@dataclass(frozen=True)
class TrackerKeys:
    """Issue keys and project prefixes held by tracker activities in the session."""

    issues: frozenset[str]
    projects: frozenset[str]

    @classmethod
    def from_activities(cls, activities: list[NormalizedActivity]) -> "TrackerKeys":
        trackers = [a for a in activities if a.provider == ProviderType.JIRA]
        issues = {a.external_id for a in trackers if TICKET_KEY_RE.fullmatch(a.external_id)}
        projects = {
            a.raw_metadata["project"]
            for a in trackers
            if isinstance(a.raw_metadata.get("project"), str)
        }
        projects |= {key.rsplit("-", 1)[0] for key in issues}
        return cls(frozenset(issues), frozenset(projects - NON_TICKET_PREFIXES))

    def matches(self, key: str, prefix: str) -> bool:
        if prefix in NON_TICKET_PREFIXES:
            return False
        return key in self.issues or prefix in self.projects


def extract_references(activity: NormalizedActivity, tracker_keys: TrackerKeys) -> set[str]:
    text = " ".join(
        part for part in (activity.external_id, activity.title, activity.description) if part
    )
    refs = {
        f"key:{m.group(0)}"
        for m in TICKET_KEY_RE.finditer(text)
        if tracker_keys.matches(m.group(0), m.group(1))
    }
    refs |= {f"repo:{m.lower()}" for m in REPO_REF_RE.findall(text)}

    urls = URL_RE.findall(text)
    if activity.url:
        urls.append(activity.url)
    refs |= {f"url:{u.rstrip('.,;:/').lower()}" for u in urls}
    return refs


def significant_keywords(title: str) -> set[str]:
    return {w for w in WORD_RE.findall(title.lower()) if len(w) > 3 and w not in STOPWORDS}


@dataclass(frozen=True)
class CandidateLink:
    first: int
    second: int
    confidence: float
    reason: str


def find_links(activities: list[NormalizedActivity]) -> list[CandidateLink]:
    """Pairwise links between activities of different providers, strongest first."""
    tracker_keys = TrackerKeys.from_activities(activities)
    references = [extract_references(a, tracker_keys) for a in activities]
    keywords = [significant_keywords(a.title) for a in activities]
    links: list[CandidateLink] = []

    for i, j in combinations(range(len(activities)), 2):
        a, b = activities[i], activities[j]
        if a.provider == b.provider:
            continue

        shared_refs = references[i] & references[j]
        if shared_refs:
            label = sorted(shared_refs)[0].split(":", 1)[1]
            links.append(CandidateLink(i, j, REFERENCE_CONFIDENCE, f"shared reference {label}"))
            continue

        if abs(a.timestamp - b.timestamp) <= TIME_WINDOW:
            shared_words = keywords[i] & keywords[j]
            if len(shared_words) >= MIN_SHARED_KEYWORDS:
                links.append(
                    CandidateLink(
                        i,
                        j,
                        TIME_KEYWORD_CONFIDENCE,
                        "close in time, shared keywords: " + ", ".join(sorted(shared_words)),
                    )
                )

    links.sort(key=lambda link: (-link.confidence, link.first, link.second))
    return links


@dataclass
class _Candidate:
    members: list[int]
    reasons: list[str]
    confidence: float


def build_candidate_groups(links: list[CandidateLink]) -> list[_Candidate]:
    """
    Greedy grouping where every pair of members is directly linked.

    An activity joins at most one group; groups are never merged, so there
    is no transitive chaining through a shared neighbour.
    """
    linked: dict[tuple[int, int], CandidateLink] = {(lk.first, lk.second): lk for lk in links}

    def link_between(x: int, y: int) -> CandidateLink | None:
        return linked.get((min(x, y), max(x, y)))

    owner: dict[int, _Candidate] = {}
    groups: list[_Candidate] = []

    for link in links:
        a_group, b_group = owner.get(link.first), owner.get(link.second)
        if a_group is None and b_group is None:
            group = _Candidate([link.first, link.second], [link.reason], link.confidence)
            groups.append(group)
            owner[link.first] = owner[link.second] = group
            continue
        if a_group is not None and b_group is not None:
            continue

        group = a_group or b_group
        newcomer = link.second if a_group is not None else link.first
        member_links = [link_between(newcomer, m) for m in group.members]
        if any(ml is None for ml in member_links):
            continue
        group.members.append(newcomer)
        group.confidence = min([group.confidence, *(ml.confidence for ml in member_links)])
        for ml in member_links:
            if ml.reason not in group.reasons:
                group.reasons.append(ml.reason)
        owner[newcomer] = group

    for group in groups:
        group.members.sort()
    groups.sort(key=lambda g: g.members[0])
    return groups


class ActivityCorrelator:
    def __init__(self, llm: LLMClient):
        self._llm = llm

    async def correlate(
        self,
        activities: list[NormalizedActivity],
        analysis: AnalysisArtifact,
        handle: ModelHandle,
    ) -> AgentOutput:
        candidates = build_candidate_groups(find_links(activities))
        output = AgentOutput(
            artifact=CorrelationArtifact(model=handle.name, groups=[], ungrouped_activity_ids=[])
        )

        decisions: dict[str, dict] = {}
        if candidates:
            result = await self._llm.complete_json(
                handle,
                CORRELATOR_SYSTEM_MESSAGE,
                self._build_user_message(activities, candidates),
            )
            output.calls.append(result)
            decisions = self._parse_decisions(result.content)

        classifications = analysis.by_activity()
        grouped: set[int] = set()
        rejected = 0

        for index, candidate in enumerate(candidates, start=1):
            group_id = f"group-{index}"
            decision = decisions.get(group_id, {})
            # groups the model did not confirm stay ungrouped
            if decision.get("keep") is not True:
                rejected += 1
                continue

            grouped.update(candidate.members)
            output.artifact.groups.append(
                self._to_group(group_id, candidate, activities, classifications, decision)
            )

        output.artifact.ungrouped_activity_ids = [
            a.activity_id for i, a in enumerate(activities) if i not in grouped
        ]

        logger.info(
            "Activities correlated",
            model=handle.name,
            candidate_groups=len(candidates),
            rejected_groups=rejected,
            groups=len(output.artifact.groups),
            ungrouped=len(output.artifact.ungrouped_activity_ids),
        )
        return output

    @staticmethod
    def _to_group(
        group_id: str,
        candidate: _Candidate,
        activities: list[NormalizedActivity],
        classifications: dict[str, ActivityClassification],
        decision: dict,
    ) -> CorrelationGroup:
        member_ids = [activities[i].activity_id for i in candidate.members]
        member_classes = [
            classifications.get(mid) or ActivityClassification(activity_id=mid)
            for mid in member_ids
        ]

        categories = Counter(c.category for c in member_classes)
        category = next(
            (cat for cat, _ in categories.most_common() if cat != ActivityCategory.UNCATEGORIZED),
            ActivityCategory.UNCATEGORIZED,
        )
        importance = max((c.importance for c in member_classes), key=lambda imp: imp.rank)
        theme = decision.get("theme")

        return CorrelationGroup(
            group_id=group_id,
            activity_ids=member_ids,
            category=category,
            importance=importance,
            correlated_with={mid: [o for o in member_ids if o != mid] for mid in member_ids},
            reason="; ".join(candidate.reasons),
            confidence=candidate.confidence,
            theme=theme.strip() if isinstance(theme, str) and theme.strip() else None,
        )

    @staticmethod
    def _build_user_message(
        activities: list[NormalizedActivity], candidates: list[_Candidate]
    ) -> str:
        payload = [
            {
                "group_id": f"group-{index}",
                "reason": "; ".join(candidate.reasons),
                "activities": [
                    {
                        "activity_id": activities[i].activity_id,
                        "provider": activities[i].provider.value,
                        "title": activities[i].title,
                        "timestamp": activities[i].timestamp.isoformat(),
                    }
                    for i in candidate.members
                ],
            }
            for index, candidate in enumerate(candidates, start=1)
        ]
        return "Review these candidate groups:\n" + json.dumps({"groups": payload}, indent=1)

    @staticmethod
    def _parse_decisions(content: str) -> dict[str, dict]:
        entries = parse_json_object(content, "decisions")
        decisions: dict[str, dict] = {}
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get("group_id"), str):
                continue
            if "keep" in entry and not isinstance(entry["keep"], bool):
                raise InvalidArtifactError(f"Non-boolean keep for {entry['group_id']}")
            decisions.setdefault(entry["group_id"], entry)
        return decisions
