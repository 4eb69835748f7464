import jsonschema

from visionstruct import registry


def test_vision_to_json_is_the_only_tool():
    assert [tool.name for tool in registry.list_tools()] == ["vision_to_json"]
    assert registry.get_tool("vision_to_json") is registry.VISION_TO_JSON
    assert registry.get_tool("unknown_tool") is None


def test_input_schema_is_valid_json_schema():
    jsonschema.Draft202012Validator.check_schema(registry.VISION_TO_JSON.input_schema)
    assert registry.VISION_TO_JSON.input_schema["required"] == ["image"]


def test_apply_defaults_fills_missing_mime_type():
    tool = registry.VISION_TO_JSON
    assert registry.apply_defaults(tool, {"image": "abc"}) == {"image": "abc", "mimeType": "image/jpeg"}
    assert registry.apply_defaults(tool, {"image": "abc", "mimeType": ""})["mimeType"] == "image/jpeg"
    assert registry.apply_defaults(tool, {"image": "abc", "mimeType": None})["mimeType"] == "image/jpeg"


def test_apply_defaults_keeps_explicit_values_and_input():
    arguments = {"image": "abc", "mimeType": "image/png"}
    resolved = registry.apply_defaults(registry.VISION_TO_JSON, arguments)

    assert resolved == arguments
    assert resolved is not arguments


def test_server_metadata_uses_wire_field_names():
    metadata = registry.server_metadata()

    assert metadata["name"] == "vision-struct"
    assert metadata["version"] == "1.0.0"
    (tool,) = metadata["tools"]
    assert tool["name"] == "vision_to_json"
    assert "inputSchema" in tool
    assert "input_schema" not in tool


def test_tool_summaries():
    assert registry.tool_summaries() == [
        {"name": "vision_to_json", "description": registry.VISION_TO_JSON.description},
    ]


def test_get_capability_binds_tool_to_invoker():
    capability = registry.get_capability("vision_to_json")

    assert capability is not None
    assert capability.tool is registry.VISION_TO_JSON
    assert callable(capability.invoke)
    assert registry.get_capability("unknown_tool") is None
