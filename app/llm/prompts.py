CATEGORIES = [
    "Food",
    "Transportation",
    "Entertainment",
    "Utilities",
    "Housing",
    "Healthcare",
    "Personal",
    "Education",
    "Other",
]

SYSTEM_PROMPT = """\
You are a concise personal-finance assistant embedded in an expense tracking chat bot.
Answer with plain text only. No markdown headings, no code fences.\
"""

CATEGORIZE_PROMPT = """\
Categorize the following expense into one of these categories:
{categories}

Expense description: "{description}"

Return only the category name, nothing else.\
"""

ENHANCE_DESCRIPTION_PROMPT = """\
This is a brief expense description: "{description}"

Please add a bit more context about what this expense might represent, but keep it very short (under 15 words).
Return only the enhanced description, nothing else.\
"""

ANALYZE_EXPENSES_PROMPT = """\
Analyze the following expense data and provide brief insights about spending patterns:
{expenses_json}

Provide 2-3 short insights about spending patterns, areas to save money, or unusual expenses.
Keep your response under 150 words.\
"""

BUDGET_RECOMMENDATIONS_PROMPT = """\
Analyze this budget data and provide practical recommendations:
{budget_json}

If they are over budget, suggest specific ways to reduce spending in this category.
If they are under budget, suggest whether they should maintain current habits or if the budget could be adjusted.
Include one specific, actionable tip related to this spending category.
Keep your response under 120 words and focus on being practical and helpful.\
"""

MONTHLY_DIGEST_PROMPT = """\
Analyze this spending data for the current period compared to the previous one and provide personalized insights:
{digest_json}

Generate a response with:
1. A brief overview of spending compared to the previous period
2. 2-3 specific observations about spending patterns
3. 2 practical suggestions for the coming period

Format your response as JSON with these fields:
{{
  "insights": "Your analysis text here (150 words max)",
  "suggestions": ["Suggestion 1", "Suggestion 2"]
}}

IMPORTANT: Return ONLY valid JSON. No markdown, no code fences, no explanation text.\
"""
