"""CustomResourceDefinition manifest for ``AutoSecret``."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import yaml

from autosecret.domain.generation import default_registry

from .schema import GROUP, KIND, PLURAL, SHORT_NAMES, SINGULAR, VERSION

if TYPE_CHECKING:
    from autosecret.domain.generation import GeneratorRegistry


def _spec_schema(kinds: tuple[str, ...]) -> dict[str, Any]:
    return {
        "description": "Auto-generated secrets, keyed by secret name.",
        "type": "object",
        "required": ["secrets"],
        "properties": {
            "secrets": {
                "type": "object",
                "additionalProperties": {"type": "string", "enum": list(kinds)},
            },
        },
    }


def build_crd_manifest(generators: GeneratorRegistry | None = None) -> dict[str, Any]:
    kinds = (generators or default_registry()).kinds
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": f"{PLURAL}.{GROUP}"},
        "spec": {
            "group": GROUP,
            "names": {
                "categories": [],
                "kind": KIND,
                "plural": PLURAL,
                "shortNames": list(SHORT_NAMES),
                "singular": SINGULAR,
            },
            "scope": "Namespaced",
            "versions": [
                {
                    "name": VERSION,
                    "served": True,
                    "storage": True,
                    "additionalPrinterColumns": [],
                    "schema": {
                        "openAPIV3Schema": {
                            "description": (
                                f"{KIND} declares secrets generated into a same-named Secret"
                            ),
                            "title": KIND,
                            "type": "object",
                            "required": ["spec"],
                            "properties": {"spec": _spec_schema(kinds)},
                        }
                    },
                    "subresources": {},
                }
            ],
        },
    }


def render_crd_yaml(generators: GeneratorRegistry | None = None) -> str:
    return yaml.safe_dump(build_crd_manifest(generators), sort_keys=False)
