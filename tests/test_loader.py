"""Tests for spec loading, base URL detection and operation extraction."""

from __future__ import annotations

import json

import httpx
import pytest
import yaml

from swagger_mcp.config import SecurityConfig
from swagger_mcp.errors import PathTraversal, PrivateIPBlocked, RegistrationError, SpecLoadError
from swagger_mcp.loader import (
    SpecLoader,
    build_operation,
    get_base_url,
    iter_operation_entries,
    load_swagger,
)

from conftest import RecordingTransport


SPEC_URL = "https://api.example.com/spec.json"


def _operations(spec):
    return [build_operation(spec, *entry) for entry in iter_operation_entries(spec)]


@pytest.mark.asyncio
async def test_load_yaml_file(tmp_path, petstore):
    path = tmp_path / "petstore.yaml"
    path.write_text(yaml.safe_dump(petstore))
    spec = await load_swagger(str(path))
    assert spec["info"]["title"] == "Petstore"


@pytest.mark.asyncio
async def test_load_json_file(tmp_path, petstore):
    path = tmp_path / "petstore.json"
    path.write_text(json.dumps(petstore))
    spec = await SpecLoader().load(str(path))
    assert set(spec["paths"]) == {"/pet", "/pet/{petId}"}


@pytest.mark.asyncio
async def test_yaml_tags_are_not_executed(tmp_path):
    path = tmp_path / "evil.yaml"
    path.write_text(
        "openapi: 3.0.0\n"
        "info: {title: x, version: '1'}\n"
        "paths: !!python/object/apply:os.system ['echo pwned']\n"
    )
    with pytest.raises(SpecLoadError) as exc_info:
        await load_swagger(str(path))
    assert isinstance(exc_info.value.__cause__, yaml.YAMLError)


@pytest.mark.asyncio
async def test_file_outside_base_directory(tmp_path, petstore):
    path = tmp_path / "petstore.json"
    path.write_text(json.dumps(petstore))
    base = tmp_path / "specs"
    base.mkdir()
    with pytest.raises(SpecLoadError) as exc_info:
        await load_swagger(str(path), SecurityConfig(base_directory=str(base)))
    assert isinstance(exc_info.value.__cause__, PathTraversal)
    assert exc_info.value.source == str(path)


@pytest.mark.asyncio
async def test_invalid_spec_shape(tmp_path):
    path = tmp_path / "empty.json"
    path.write_text(json.dumps({"openapi": "3.0.0", "info": {"title": "x", "version": "1"}, "paths": {}}))
    with pytest.raises(SpecLoadError, match="paths"):
        await load_swagger(str(path))


@pytest.mark.asyncio
async def test_malformed_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(SpecLoadError, match="broken.json"):
        await load_swagger(str(path))


@pytest.mark.asyncio
async def test_remote_json(petstore, json_transport):
    transport = json_transport(petstore)
    spec = await SpecLoader(transport=transport).load(SPEC_URL)
    assert spec["info"]["version"] == "1.2.0"
    assert str(transport.requests[0].url) == SPEC_URL


@pytest.mark.asyncio
async def test_remote_yaml(petstore):
    transport = RecordingTransport(lambda request: httpx.Response(200, text=yaml.safe_dump(petstore)))
    spec = await SpecLoader(transport=transport).load("https://api.example.com/spec.yaml")
    assert spec["info"]["title"] == "Petstore"


@pytest.mark.asyncio
async def test_remote_private_address_never_fetched(petstore, json_transport):
    transport = json_transport(petstore)
    with pytest.raises(SpecLoadError) as exc_info:
        await SpecLoader(transport=transport).load("https://127.0.0.1/spec.json")
    assert isinstance(exc_info.value.__cause__, PrivateIPBlocked)
    assert transport.requests == []


@pytest.mark.asyncio
async def test_remote_http_error(json_transport):
    with pytest.raises(SpecLoadError, match="HTTP 404"):
        await SpecLoader(transport=json_transport({"message": "nope"}, 404)).load(SPEC_URL)


@pytest.mark.asyncio
async def test_remote_size_cap(petstore, json_transport):
    loader = SpecLoader(max_bytes=64, transport=json_transport(petstore))
    with pytest.raises(SpecLoadError, match="exceeds maximum"):
        await loader.load(SPEC_URL)


@pytest.mark.asyncio
async def test_remote_cache(petstore, json_transport):
    transport = json_transport(petstore)
    loader = SpecLoader(cache_seconds=60, transport=transport)
    await loader.load(SPEC_URL)
    await loader.load(SPEC_URL)
    assert len(transport.requests) == 1


class TestGetBaseUrl:
    def test_openapi_servers(self, petstore):
        assert get_base_url(petstore) == "https://api.petstore.test/v1"

    def test_relative_server_joined_to_source(self):
        spec = {"servers": [{"url": "/api/v3"}]}
        assert get_base_url(spec, "https://petstore.example.com/api/v3/openapi.json") == (
            "https://petstore.example.com/api/v3"
        )

    def test_swagger_two_host(self):
        spec = {"swagger": "2.0", "host": "petstore.swagger.io", "basePath": "/v2", "schemes": ["http"]}
        assert get_base_url(spec) == "http://petstore.swagger.io/v2"
        assert get_base_url({"host": "example.com"}) == "https://example.com"

    def test_missing(self):
        assert get_base_url({}) == ""


class TestOperationEntries:
    def test_skips_non_verb_keys_and_merges_shared_parameters(self, petstore):
        operations = _operations(petstore)
        assert [(op.method, op.path) for op in operations] == [
            ("get", "/pet"),
            ("post", "/pet"),
            ("get", "/pet/{petId}"),
            ("delete", "/pet/{petId}"),
        ]
        get_pet = operations[2]
        assert [p["name"] for p in get_pet.parameters] == ["petId"]

    def test_operation_parameter_overrides_shared(self):
        spec = {
            "paths": {
                "/a/{id}": {
                    "parameters": [{"name": "id", "in": "path", "schema": {"type": "string"}}],
                    "get": {
                        "parameters": [
                            {"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}}
                        ]
                    },
                }
            }
        }
        (operation,) = _operations(spec)
        assert operation.parameters == (
            {"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}},
        )
        assert operation.operation_id == "get_a_id"

    def test_parameter_refs_dereferenced(self):
        spec = {
            "components": {"parameters": {"Limit": {"name": "limit", "in": "query"}}},
            "paths": {
                "/a": {"get": {"parameters": [{"$ref": "#/components/parameters/Limit"}, {"$ref": "#/nope"}]}}
            },
        }
        (operation,) = _operations(spec)
        assert operation.parameters == ({"name": "limit", "in": "query"},)

    def test_request_body_ref_dereferenced(self):
        spec = {
            "components": {"requestBodies": {"Pet": {"content": {"application/json": {"schema": {}}}}}},
            "paths": {"/a": {"post": {"requestBody": {"$ref": "#/components/requestBodies/Pet"}}}},
        }
        (operation,) = _operations(spec)
        assert operation.request_body == {"content": {"application/json": {"schema": {}}}}

    @pytest.mark.parametrize(
        "operation, message",
        [
            ("oops", "Operation must be an object"),
            ({"parameters": "oops"}, "parameters must be an array"),
            ({"requestBody": "oops"}, "requestBody must be an object"),
            ({"responses": "oops"}, "responses must be an object"),
            ({"tags": "pets"}, "tags must be an array"),
            ({"parameters": [{"name": "x", "in": "query", "schema": "string"}]}, "'x' schema must be"),
        ],
    )
    def test_malformed_operation_rejected(self, operation, message):
        with pytest.raises(RegistrationError, match=message):
            build_operation({}, "get", "/broken", operation)

    def test_malformed_path_item_skipped(self):
        spec = {"paths": {"/a": "oops", "/b": {"get": {}}}}
        assert [(method, path) for method, path, _, _ in iter_operation_entries(spec)] == [("get", "/b")]
