import math
import random
from typing import Annotated

from pydantic import Field


class WeatherPlugin:
    """Plugin providing the weather lookup and temperature conversion tools."""

    def __init__(self, rng: random.Random = None):
        self.rng = rng or random.Random()

    def weather(
        self,
        location: Annotated[str, Field(description="The location to get the weather for")],
    ) -> dict:
        """Get the weather in a location (fahrenheit)"""
        temperature = self.rng.randint(32, 90)
        return {"location": location, "temperature": temperature}

    def convert_fahrenheit_to_celsius(
        self,
        temperature: Annotated[
            float, Field(description="The temperature in fahrenheit to convert")
        ],
    ) -> dict:
        """Convert a temperature in fahrenheit to celsius"""
        # round half up, not to even
        celsius = math.floor((temperature - 32) * 5 / 9 + 0.5)
        return {"celsius": celsius}

    def hook_provide_tools(self):
        """Return tools this plugin provides for auto-registration, keyed by tool name."""
        return {
            "weather": self.weather,
            "convertFahrenheitToCelsius": self.convert_fahrenheit_to_celsius,
        }

    def hook_provide_system_prompt(self):
        """Return system prompt addition for the weather tools."""
        return """
## Weather Tools

- **weather(location)**: current temperature for a location, in fahrenheit
- **convertFahrenheitToCelsius(temperature)**: convert a fahrenheit value to celsius

When the user asks for a temperature in celsius, look up the weather first and
then convert the result. Report which location the numbers refer to.
""".strip()
