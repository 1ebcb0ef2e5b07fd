"""Product specification models."""

import hashlib
from typing import Optional

from pydantic import BaseModel, Field


def requirement_task_id(requirement_id: str) -> str:
    """Derive the task ID that implements a requirement.

    Args:
        requirement_id: Requirement identifier

    Returns:
        Deterministic task ID ("task-<requirement_id>")
    """
    return f"task-{requirement_id}"


class Requirement(BaseModel):
    """Granular condition a feature must satisfy."""

    id: str = Field(default="", description="Requirement identifier")
    title: str = Field(default="", description="Requirement title")
    description: str = Field(default="")
    priority: str = Field(default="", description="low/medium/high")
    estimate: str = Field(default="", description="Free-form estimate, e.g. 4h")
    depends_on: list[str] = Field(default_factory=list, description="Requirement IDs")


class Feature(BaseModel):
    """Functional unit within the spec."""

    id: str = Field(default="", description="Feature identifier")
    title: str = Field(default="")
    description: str = Field(default="")
    requirements: list[Requirement] = Field(default_factory=list)


class Constraint(BaseModel):
    """Non-functional requirement or policy."""

    id: str = Field(default="")
    description: str = Field(default="")


class ProductSpec(BaseModel):
    """Top-level specification of what is being built."""

    id: str = Field(default="", description="Spec identifier")
    title: str = Field(default="")
    description: str = Field(default="")
    version: str = Field(default="")
    features: list[Feature] = Field(default_factory=list)
    constraints: list[Constraint] = Field(default_factory=list)

    def hash(self) -> str:
        """Return a content hash of the semantically meaningful fields.

        Covers ID, title, version and the full feature/requirement tree.
        Serialization formatting and constraints do not affect the result.
        """
        h = hashlib.sha256()

        def feed(*parts: str) -> None:
            for part in parts:
                # Length prefix keeps ("ab", "c") distinct from ("a", "bc")
                encoded = part.encode("utf-8")
                h.update(f"{len(encoded)}:".encode("ascii"))
                h.update(encoded)

        feed(self.id, self.version, self.title)
        for feature in self.features:
            feed("F", feature.id, feature.title, feature.description)
            for req in feature.requirements:
                feed("R", req.id, req.title, req.description)
                feed(*sorted(req.depends_on))
        return h.hexdigest()

    def feature(self, feature_id: str) -> Optional[Feature]:
        """Find feature by ID."""
        for feature in self.features:
            if feature.id == feature_id:
                return feature
        return None

    def feature_ids(self) -> set[str]:
        """Return IDs of all features."""
        return {f.id for f in self.features}

    def requirement_task_ids(self) -> set[str]:
        """Return the derived task ID of every requirement."""
        return {
            requirement_task_id(req.id)
            for feature in self.features
            for req in feature.requirements
        }

    def validate_structure(self) -> list[str]:
        """Check the spec for structural integrity.

        Returns:
            List of problems (empty if valid)
        """
        errors = []
        if not self.id:
            errors.append("spec ID is required")
        if not self.title:
            errors.append("spec title is required")
        if not self.features:
            errors.append("spec must have at least one feature")

        seen: set[str] = set()
        for i, feature in enumerate(self.features):
            if not feature.id:
                errors.append(f"feature at index {i} missing ID")
            elif feature.id in seen:
                errors.append(f"duplicate feature ID: {feature.id}")
            seen.add(feature.id)

            for j, req in enumerate(feature.requirements):
                if not req.id:
                    errors.append(
                        f"feature '{feature.id}' requirement at index {j} missing ID"
                    )
                if not req.title:
                    errors.append(
                        f"feature '{feature.id}' requirement '{req.id}' missing title"
                    )
        return errors
