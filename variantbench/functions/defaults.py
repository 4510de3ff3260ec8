"""Built-in function definitions available to every execution."""

from variantbench.functions.models import FunctionDefinition, FunctionExecutionMode

WEATHER_FUNCTION = FunctionDefinition(
    name="get_current_weather",
    display_name="Get Current Weather",
    description="Get current weather information for a specific location using OpenWeather API",
    parameters_schema={
        "type": "object",
        "properties": {
            "location": {
                "type": "string",
                "description": 'City and country code separated by comma, e.g. "London,UK"',
            },
            "units": {
                "type": "string",
                "enum": ["metric", "imperial", "kelvin"],
                "description": "Units of measurement",
            },
            "lang": {
                "type": "string",
                "description": "Language code for weather description (e.g., en, es, fr)",
            },
        },
        "required": ["location"],
    },
    endpoint_url="https://api.openweathermap.org/data/2.5/weather?appid={openWeatherApiKey}",
    http_method="GET",
    headers={"Accept": "application/json"},
    required_api_keys=["openWeatherApiKey"],
    mock_response={
        "location": "San Francisco",
        "temperature": 72,
        "unit": "F",
        "condition": "Sunny",
        "humidity": 45,
        "wind_speed": 8,
        "description": "Current weather in San Francisco: 72°F, sunny with clear skies",
    },
    execution_mode=FunctionExecutionMode.AUTO,
)

NEO4J_LOOKUP_FUNCTION = FunctionDefinition(
    name="neo4j_node_lookup",
    display_name="Neo4j Node Lookup",
    description="Look up nodes in a Neo4j graph database by label and properties",
    parameters_schema={
        "type": "object",
        "properties": {
            "label": {
                "type": "string",
                "description": "The node label to search for (e.g., Person, Company, Product)",
            },
            "properties": {
                "type": "object",
                "description": "Key-value pairs to match against node properties",
            },
            "limit": {
                "type": "integer",
                "description": "Maximum number of nodes to return",
                "minimum": 1,
                "maximum": 100,
            },
        },
        "required": ["label"],
    },
    endpoint_url="{neo4jUrl}/db/{neo4jDatabase}/tx/commit",
    http_method="POST",
    headers={
        "Content-Type": "application/json",
        "Accept": "application/json",
    },
    required_api_keys=["neo4jUrl", "neo4jUsername", "neo4jPassword", "neo4jDatabase"],
    mock_response={
        "nodes": [
            {
                "id": "mock_node_1",
                "labels": ["Person"],
                "properties": {"name": "Mock User", "age": 30},
            }
        ],
        "relationships": [],
        "summary": {"totalNodes": 1, "totalRelationships": 0},
    },
    execution_mode=FunctionExecutionMode.AUTO,
)


def default_function_definitions() -> list[FunctionDefinition]:
    """Return the built-in function definitions."""
    return [WEATHER_FUNCTION, NEO4J_LOOKUP_FUNCTION]
