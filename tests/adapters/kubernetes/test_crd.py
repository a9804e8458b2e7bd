from __future__ import annotations

import yaml

from autosecret.adapters.kubernetes import build_crd_manifest, render_crd_yaml
from autosecret.domain.generation import default_registry


def test_manifest_describes_autosecret_resource() -> None:
    manifest = build_crd_manifest()
    spec = manifest["spec"]

    assert manifest["metadata"]["name"] == "autosecrets.webstep.no"
    assert spec["group"] == "webstep.no"
    assert spec["scope"] == "Namespaced"
    assert spec["names"]["kind"] == "AutoSecret"
    assert spec["names"]["shortNames"] == ["as"]
    assert spec["versions"][0]["name"] == "v1alpha1"


def test_schema_enumerates_registered_kinds() -> None:
    registry = default_registry()
    registry.register("static", lambda: b"x")

    schema = build_crd_manifest(registry)["spec"]["versions"][0]["schema"]["openAPIV3Schema"]
    secrets = schema["properties"]["spec"]["properties"]["secrets"]

    assert secrets["additionalProperties"]["enum"] == ["static", "ulid", "uuid"]


def test_rendered_yaml_round_trips() -> None:
    rendered = render_crd_yaml()

    assert rendered.startswith("apiVersion: apiextensions.k8s.io/v1\n")
    assert yaml.safe_load(rendered) == build_crd_manifest()
