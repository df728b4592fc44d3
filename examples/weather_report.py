"""Weather report: a tool, an input guardrail and handoffs working together.

``Weather Report Agent`` hands the conversation to ``Weather Bot`` (which
owns the ``get_weather`` tool) or to ``Forecast Agent``. Every request to
``Weather Bot`` passes the ``Location Guardrail`` first: a nested run of the
``Guardrail Check`` classifier decides whether the user named a location,
and the run is aborted when they did not.

Usage:
    export OPENAI_API_KEY=sk-...
    python examples/weather_report.py
"""

import asyncio
from typing import Any

from pydantic import BaseModel

from waypoint import (
    Agent,
    GuardrailFunctionOutput,
    InputGuardrailTripwireTriggered,
    RunContext,
    handoff,
    input_guardrail,
    run,
    tool,
)


@tool
def get_weather(location: str) -> str:
    """Get the weather for a given location.

    Args:
        location: The location to get the weather for.
    """
    return f"The weather in {location} is currently sunny."


class LocationCheck(BaseModel):
    is_location: bool
    reasoning: str


guardrail_agent = Agent(
    name="Guardrail Check",
    instructions="Check if the user provided a location in their request.",
    output_type=LocationCheck,
)


@input_guardrail(name="Location Guardrail")
async def location_guardrail(
    context: RunContext[Any], agent: Agent, value: str
) -> GuardrailFunctionOutput:
    result = await run(guardrail_agent, value, context=context)
    verdict = result.final_output_as(LocationCheck)
    return GuardrailFunctionOutput(output_info=verdict, tripwire_triggered=not verdict.is_location)


forecast_agent = Agent(
    name="Forecast Agent",
    instructions=(
        "You are a forecast bot. If the weather is sunny, predict that it will eventually rain."
    ),
)

weather_agent = Agent(
    name="Weather Bot",
    instructions="You are a weather bot.",
    model="openai:gpt-4o",
    tools=[get_weather],
    handoffs=[forecast_agent],
    input_guardrails=[location_guardrail],
)

# Input guardrails run for the agent a run starts with, so the entry point
# carries the location check too.
weather_report_agent = Agent(
    name="Weather Report Agent",
    instructions="You are a bot that will generate a weather report summary.",
    handoffs=[weather_agent, handoff(forecast_agent)],
    input_guardrails=[location_guardrail],
)


async def main(question: str = "What is the weather like in San Francisco?") -> None:
    try:
        result = await run(weather_report_agent, question)
    except InputGuardrailTripwireTriggered:
        print("Location guardrail tripped")
        return
    print(result.final_output)


if __name__ == "__main__":
    asyncio.run(main())
