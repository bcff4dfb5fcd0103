"""
Petalwise - Prompt Templates & Fallback Constants
===================================================
Centralised prompt text and the fixed strings used by the fallback
tiers.  All prompts live here so they can be versioned and reviewed
independently of application logic.

Exports
-------
SYSTEM_PROMPT, CONTEXT_PREAMBLE, CONTEXT_ENTRY_TEMPLATE,
CONTEXT_GUIDANCE, BATCH_DETAILS_TEMPLATE, JSON_FORMAT_INSTRUCTIONS,
RETRIEVAL_QUERY_TEMPLATE, DEFAULT_REASONING,
SALVAGE_DEFAULT_RECOMMENDATIONS, FALLBACK_REASONING_TEMPLATE,
FALLBACK_RECOMMENDATIONS, NOT_SPECIFIED.
"""

NOT_SPECIFIED: str = "Not specified"


# ══════════════════════════════════════════════════════════════════════
#  SYSTEM PROMPT
# ══════════════════════════════════════════════════════════════════════

SYSTEM_PROMPT: str = """You are a domain expert in floral care with access to specialised flower care knowledge.

═══ Task ═══
• Predict the remaining lifespan of a flower batch and recommend how to care for and sell it.
• Consider storage conditions, initial quality and care practices when estimating time.
• When specific flower care information is supplied, base your prediction and advice on it.

═══ Output contract ═══
Return a SINGLE JSON object and nothing else, with these keys:
  prediction{days, hours, minutes, totalHours}, confidence, reasoning, recommendations[]
You may add an optional financialRecommendations[] array.
Always return recommendations as an array of specific, actionable items."""


# ══════════════════════════════════════════════════════════════════════
#  RETRIEVED CONTEXT
# ══════════════════════════════════════════════════════════════════════

RETRIEVAL_QUERY_TEMPLATE: str = "{flower_type} {variety} care requirements optimal conditions vase life tips"

CONTEXT_PREAMBLE: str = "IMPORTANT: Use the following expert flower care information to make more accurate predictions and provide specific, actionable recommendations."

CONTEXT_ENTRY_TEMPLATE: str = """SPECIFIC CARE INFORMATION FOR {header}:
- Care Requirements: {care_requirements}
- Optimal Conditions: {optimal_conditions}
- Common Issues: {common_issues}
- Vase Life Tips: {vase_life_tips}
- Source: {source}"""

CONTEXT_GUIDANCE: str = """Based on the expert care information above, provide:
1. More precise spoilage predictions considering the specific care requirements
2. Detailed, actionable recommendations based on the flower's specific needs
3. Specific care tips that address the flower's unique characteristics
4. Any special considerations mentioned in the care information

Ensure your recommendations are specific to this flower type and variety, not generic advice."""


# ══════════════════════════════════════════════════════════════════════
#  BATCH DETAILS & RESPONSE FORMAT
# ══════════════════════════════════════════════════════════════════════

BATCH_DETAILS_TEMPLATE: str = """Given the following flower batch information, predict the remaining lifespan and provide recommendations:

Flower Type: {flower_type}
Variety: {variety}
Quantity: {quantity}
Supplier: {supplier}
Initial Condition: {initial_condition}
Storage Environment: {storage_environment}
Floral Food: {floral_food}
Vase Cleanliness: {vase_cleanliness}
Water Type: {water_type}
Humidity Level: {humidity_level}
Expected Shelf Life: {expected_shelf_life}
Current Date: {current_date}
Dynamic Spoilage Date: {dynamic_spoilage_date}"""

JSON_FORMAT_INSTRUCTIONS: str = """Please provide a prediction in the following JSON format:
{{
  "prediction": {{
    "days": number of full days remaining,
    "hours": number of hours remaining (0-23),
    "minutes": number of minutes remaining (0-59),
    "totalHours": total hours remaining (including fractional hours)
  }},
  "confidence": number between 0 and 1,
  "reasoning": "{reasoning_hint}",
  "recommendations": ["specific recommendation 1", "specific recommendation 2", "specific recommendation 3"],
  "financialRecommendations": [
    {{
      "title": "short action title",
      "type": "discount | bundle | promotion | pricing",
      "urgency": "low | medium | high | critical",
      "timeWindow": "when to act",
      "discountPercentage": optional number between 0 and 100,
      "suggestedPrice": optional number,
      "description": "what to do",
      "justification": "why, tied to the predicted lifespan",
      "actionItems": ["step 1", "step 2"]
    }}
  ]
}}

Note: The prediction should be precise down to the minute, and totalHours should be used for calculations. financialRecommendations is optional.{closing_note}"""

REASONING_HINT_WITH_CONTEXT: str = "detailed explanation of the prediction incorporating the expert care information"
REASONING_HINT_PLAIN: str = "detailed explanation of the prediction"
CLOSING_NOTE_WITH_CONTEXT: str = " Use the expert care information to make more accurate predictions and provide specific, actionable recommendations."


# ══════════════════════════════════════════════════════════════════════
#  FALLBACK TIERS
# ══════════════════════════════════════════════════════════════════════

DEFAULT_REASONING: str = "Based on the provided data"

SALVAGE_DEFAULT_RECOMMENDATIONS: tuple[str, ...] = ("Monitor condition regularly", "Check water levels daily", "Maintain proper temperature")

FALLBACK_REASONING_TEMPLATE: str = "Fallback prediction based on expected shelf life ({base_days:g} days) adjusted for initial condition ({condition}), storage environment ({storage}), and floral food usage ({floral_food})."

FALLBACK_RECOMMENDATIONS: tuple[str, ...] = ("Monitor flower condition regularly", "Maintain optimal storage conditions", "Consider using floral food if not already used")
