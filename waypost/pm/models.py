"""
Data models for the product spec.

The spec is the declarative statement of intent: features, each with a list
of requirements. Plans are derived from it and drift is measured against it.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Optional

from waypost.lib.constants import ID_PATTERN


@dataclass
class Requirement:
    """A granular condition a feature must satisfy."""
    id: str
    title: str
    description: str = ""
    priority: str = "medium"                   # high, medium, low
    estimate: str = ""                         # Free text: "2d", "4h"
    depends_on: list[str] = field(default_factory=list)  # Other requirement ids


@dataclass
class Feature:
    id: str
    title: str
    description: str = ""
    requirements: list[Requirement] = field(default_factory=list)


@dataclass
class Constraint:
    """Non-functional requirement or policy note. Not planned as a task."""
    id: str
    description: str = ""


@dataclass
class ProductSpec:
    id: str
    title: str
    description: str = ""
    version: str = ""
    features: list[Feature] = field(default_factory=list)
    constraints: list[Constraint] = field(default_factory=list)

    def get_feature(self, feature_id: str) -> Optional[Feature]:
        for feature in self.features:
            if feature.id == feature_id:
                return feature
        return None

    def iter_requirements(self):
        """Yield (feature, requirement) pairs in declaration order."""
        for feature in self.features:
            for req in feature.requirements:
                yield feature, req

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "version": self.version,
            "features": [
                {
                    "id": f.id,
                    "title": f.title,
                    "description": f.description,
                    "requirements": [
                        {
                            "id": r.id,
                            "title": r.title,
                            "description": r.description,
                            "priority": r.priority,
                            "estimate": r.estimate,
                            "depends_on": list(r.depends_on),
                        }
                        for r in f.requirements
                    ],
                }
                for f in self.features
            ],
            "constraints": [{"id": c.id, "description": c.description} for c in self.constraints],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProductSpec":
        features = []
        for f in data.get("features") or []:
            requirements = [
                Requirement(
                    id=r.get("id", ""),
                    title=r.get("title", ""),
                    description=r.get("description", "") or "",
                    priority=r.get("priority", "medium") or "medium",
                    estimate=r.get("estimate", "") or "",
                    depends_on=list(r.get("depends_on") or []),
                )
                for r in f.get("requirements") or []
            ]
            features.append(Feature(
                id=f.get("id", ""),
                title=f.get("title", ""),
                description=f.get("description", "") or "",
                requirements=requirements,
            ))
        constraints = [
            Constraint(id=c.get("id", ""), description=c.get("description", "") or "")
            for c in data.get("constraints") or []
        ]
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            description=data.get("description", "") or "",
            version=str(data.get("version", "") or ""),
            features=features,
            constraints=constraints,
        )


def spec_hash(spec: ProductSpec) -> str:
    """Deterministic SHA-256 over the parts of the spec that carry intent.

    Titles of features and requirements are left out so renaming does not
    count as a change of intent; ids and descriptions do.
    """
    intent = {
        "id": spec.id,
        "version": spec.version,
        "title": spec.title,
        "features": [
            {
                "id": feature.id,
                "description": feature.description,
                "requirements": [[req.id, req.description] for req in feature.requirements],
            }
            for feature in spec.features
        ],
    }
    canonical = json.dumps(intent, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def validate_spec(spec: ProductSpec) -> list[str]:
    """Check structural integrity. Returns a list of problems, empty if valid."""
    problems = []
    if not spec.id:
        problems.append("spec id is required")
    if not spec.title:
        problems.append("spec title is required")
    if not spec.features:
        problems.append("spec must have at least one feature")

    seen_features = set()
    seen_requirements = set()
    for i, feature in enumerate(spec.features):
        if not feature.id:
            problems.append(f"feature at index {i} missing id")
        elif not ID_PATTERN.match(feature.id):
            problems.append(f"invalid feature id: {feature.id!r}")
        elif feature.id in seen_features:
            problems.append(f"duplicate feature id: {feature.id}")
        seen_features.add(feature.id)

        for j, req in enumerate(feature.requirements):
            if not req.id:
                problems.append(f"feature '{feature.id}' requirement at index {j} missing id")
            elif not ID_PATTERN.match(req.id):
                problems.append(f"invalid requirement id: {req.id!r}")
            elif req.id in seen_requirements:
                problems.append(f"duplicate requirement id: {req.id}")
            if not req.title:
                problems.append(f"feature '{feature.id}' requirement '{req.id}' missing title")
            seen_requirements.add(req.id)

    all_requirements = {r.id for _, r in spec.iter_requirements() if r.id}
    for feature, req in spec.iter_requirements():
        for dep in req.depends_on:
            if dep not in all_requirements:
                problems.append(f"requirement '{req.id}' depends on unknown requirement '{dep}'")
    return problems
