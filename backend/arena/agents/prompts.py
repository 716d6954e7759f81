"""Prompt builders for the reasoning step."""

from arena.models import CachedMarket

RESPONSE_FORMAT = """Respond with a JSON object:
{"prediction": "YES" or "NO", "confidence": number between 0.5 and 1.0, "reasoning": "short explanation"}"""


def build_market_prompt(market: CachedMarket) -> str:
    end_date = market.end_date.strftime("%Y-%m-%d") if market.end_date else "unknown"
    description = market.description.strip() or "No description provided."
    return f"""Analyze this prediction market and predict the outcome.

Question: {market.question}
Description: {description}
Current YES price: {market.yes_price:.3f}
Current NO price: {market.no_price:.3f}
Volume: ${market.volume:,.0f}
Ends: {end_date}

{RESPONSE_FORMAT}"""
