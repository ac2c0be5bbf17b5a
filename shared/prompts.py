# [START: categorization]
CATEGORY_PROMPT = """
You map film and TV productions to brand categories used in our CRM.

Production:
{production}

Return ONLY valid JSON: {{"categories": ["...", "..."]}}
List 5 to 10 CRM category labels (for example "Automotive", "Beverages",
"Fashion & Apparel", "Technology", "Food & Dining", "Travel & Hospitality",
"Security", "Sports & Fitness", "Beauty & Personal Care", "Financial Services")
whose products could naturally appear on screen in this production.
"""
# [END: categorization]

# [START: search terms]
SEARCH_TERMS_PROMPT = """
From the synopsis below, extract 2 or 3 specific search terms that would find
meetings or emails about this production: character names, distinctive
locations, named events or props. Do NOT return generic words such as genre
names, "family", "luxury" or "story".

Synopsis:
{synopsis}

Already used terms: {existing}

Return ONLY valid JSON: {{"terms": ["...", "..."]}}
"""
# [END: search terms]

# [START: wildcard brands]
WILDCARD_PROMPT = """
Propose {count} unexpected but credible consumer brands for product placement in
this production. Avoid global mega-brands ({excluded}). Prefer brands whose
product could play an actual role in a scene.

Production:
{production}

Return ONLY valid JSON:
{{"brands": [{{"name": "...", "category": "...", "reason": "one sentence"}}]}}
"""
# [END: wildcard brands]

# [START: new project detection]
NEW_PROJECT_PROMPT = """
Extract the project/production name and key details from this text.

Text: "{message}"

Return ONLY valid JSON:
{{
  "title": "extracted title or null",
  "synopsis": "plot/description or null",
  "genre": "genre or null",
  "cast": "comma separated cast names or null",
  "location": "location or null",
  "isNewProject": true or false
}}

Set isNewProject to true ONLY if the message introduces a NEW production
(synopsis, starring, production details or an explicit title).
Set isNewProject to false for follow-up questions about brands.
"""
# [END: new project detection]

# [START: intent routing]
ROUTER_SYSTEM_PROMPT = """
You route messages for a brand-partnership assistant working on film and TV
product placement. Always call exactly one tool:
- find_brands: the user wants brand recommendations for a production.
- quick_match: the user wants a fast, short list of brand matches.
- get_brand_activity: the user asks about recent meetings or emails with a brand.
- create_pitches_for_brands: the user names specific brands and wants pitches.
- answer_general_question: anything else.

Current project context: {project_context}

Recent conversation:
{conversation}
"""
# [END: intent routing]

# [START: pitch generation]
PITCH_PROMPT = """
Write a product-placement pitch for each brand below for the production
"{title}".

Production details:
{production}

Brands:
{brands}

For EACH brand output exactly this block, in the same order as listed:

Brand: <brand name>
Integration idea: <one or two sentences describing the on-screen moment>
Why it works: <one sentence tying the brand to the story or audience>
Insight: <one sentence citing the evidence given for the brand>

If a brand's evidence is "{no_evidence}", write exactly "{no_evidence}" as its
Insight. Never invent meetings, emails or past deals.
"""
# [END: pitch generation]

# [START: general answer]
GENERAL_ANSWER_PROMPT = """
Answer the user's message as the agency's brand-partnership assistant. Be brief
and practical.

Current project: {project_context}

Recent conversation:
{conversation}

User message:
{message}
"""
# [END: general answer]
