"""Built-in generation prompts, one per content kind.

Every template contains a ``[matched_content]`` placeholder (and may
contain ``[original_title]``) and ends by demanding a single JSON
object, which the response parser depends on.
"""

from __future__ import annotations

from feedpress.models import ContentKind

MATCHED_CONTENT = "[matched_content]"
ORIGINAL_TITLE = "[original_title]"

JSON_INSTRUCTION = "Return ONLY the JSON object. No markdown, no code fences, no commentary."

SYSTEM_MESSAGE = (
    "You are a careful content editor for an opportunities site. You reply with "
    "a single valid JSON object and nothing else. Only use facts present in the "
    "source material; never invent dates, prizes, links or requirements."
)

_REJECT_SHAPE = """{
  "valid": false,
  "reason": "INVALID CONTENT: <short specific reason>"
}"""

_ACCEPT_SHAPE = """{
  "valid": true,
  "title": "<clear, specific headline, at most 150 characters>",
  "excerpt": "<one or two sentence summary, at most 300 characters>",
  "content": "<original HTML article using <h2>, <p> and <ul> sections>",
  "deadline": "<YYYY-MM-DD or null>",
  "prize_value": "<prize, pay or value as stated, or null>",
  "requirements": "<eligibility and entry requirements, or null>",
  "location": "<where it applies (country, city, online), or null>",
  "apply_url": "<direct entry or application URL if stated, or null>",
  "confidence_score": <0.0-1.0, how sure you are this is a real, current opportunity>
}"""

_BLOG_SHAPE = """{
  "valid": true,
  "title": "<the original title, unchanged>",
  "excerpt": "<first ~150 characters of the text, plain text>",
  "content": "<the original content, unchanged, HTML preserved>",
  "meta_title": "<title truncated to 60 characters>",
  "meta_description": "<excerpt truncated to 155 characters>",
  "confidence_score": 1.0
}"""


def _opportunity_prompt(noun: str, must_have: list[str], reject_if: list[str]) -> str:
    must = "\n".join(f"- {line}" for line in must_have)
    reject = "\n".join(f"- {line}" for line in reject_if)
    return f"""You review scraped web pages and decide whether they describe a real, \
currently open {noun}. If they do, you write an original, well-structured article \
about it in English.

VALIDATION (do this first). The page must clearly provide most of:
{must}

Reject the page if any of these apply:
{reject}
- The opportunity has already closed or the deadline has clearly passed.
- The text is too thin (navigation, image-only banners, placeholders) to write a useful article.

If the page is not a valid {noun}, return exactly:
{_REJECT_SHAPE}

If it is valid, return:
{_ACCEPT_SHAPE}

Write the content in your own words. Keep every fact traceable to the source. \
Use null for any field the source does not state.

Original title: {ORIGINAL_TITLE}

SOURCE CONTENT:
{MATCHED_CONTENT}

{JSON_INSTRUCTION}"""


_OPPORTUNITY_SPECS: dict[ContentKind, tuple[str, list[str], list[str]]] = {
    ContentKind.CONTEST: (
        "skill-based contest",
        [
            "The contest name and what kind of work is submitted (photos, essays, designs, video).",
            "Prizes or awards on offer.",
            "How to submit and the submission deadline.",
            "Judging criteria and who is eligible.",
        ],
        [
            "Winners are picked at random rather than judged (that is a giveaway or sweepstakes).",
            "It reports past winners, finalists or results with no new entry period.",
            "It is a sports event, TV talent show, or a competition between teams or nations.",
        ],
    ),
    ContentKind.GIVEAWAY: (
        "giveaway",
        [
            "What is being given away and its approximate value.",
            "Who runs the giveaway.",
            "How to enter and the closing date.",
            "Eligibility rules (age, region).",
        ],
        [
            "It is a product review or deal roundup with no way to enter.",
            "Entry requires a purchase.",
            "It only announces winners of a finished giveaway.",
        ],
    ),
    ContentKind.SWEEPSTAKES: (
        "sweepstakes",
        [
            "The sponsor and the prizes.",
            "How to enter, including entry frequency.",
            "Start and end dates.",
            "Eligibility rules and a link to official rules if present.",
        ],
        [
            "Entry depends on skill or judging (that is a contest).",
            "It is a lottery, gambling offer, or requires payment to enter.",
        ],
    ),
    ContentKind.DREAM_JOB: (
        "dream job or unusual paid role",
        [
            "The employer and the role.",
            "Pay or perks.",
            "How to apply and the application deadline.",
            "What the role involves and who can apply.",
        ],
        [
            "It is a generic job board listing or career-advice article.",
            "It is a news story about someone who already has the job.",
        ],
    ),
    ContentKind.GET_PAID_TO: (
        "paid task or study (get paid to test, review, take part)",
        [
            "The organization paying.",
            "What participants do and how much they are paid.",
            "How to sign up and any deadline.",
            "Eligibility requirements.",
        ],
        [
            "It is a get-rich-quick, MLM or pay-to-join scheme.",
            "It is a general article about side hustles without a specific offer.",
        ],
    ),
    ContentKind.INSTANT_WIN: (
        "instant win game",
        [
            "The sponsor and the prizes.",
            "How to play and how often.",
            "The promotion period.",
            "Eligibility rules.",
        ],
        [
            "Results are drawn after the promotion ends (that is a sweepstakes).",
            "It requires a purchase or is a casino or betting offer.",
        ],
    ),
    ContentKind.JOB_FAIR: (
        "job fair or hiring event",
        [
            "The event name and organizer.",
            "Date, time and venue (or that it is virtual).",
            "Employers or industries attending.",
            "How to register and who may attend.",
        ],
        [
            "The event has already taken place.",
            "It is a single employer's ordinary job posting.",
        ],
    ),
    ContentKind.SCHOLARSHIP: (
        "scholarship, grant or fellowship",
        [
            "The award name and provider.",
            "Award amount or what it covers.",
            "Eligibility (level of study, field, residency).",
            "How to apply and the deadline.",
        ],
        [
            "It is a loan or a paid service that charges applicants.",
            "It lists past recipients without an open application round.",
        ],
    ),
    ContentKind.VOLUNTEER: (
        "volunteer opportunity",
        [
            "The organization and the cause.",
            "What volunteers do and the time commitment.",
            "Location or whether it is remote.",
            "How to sign up.",
        ],
        [
            "It is a fundraising appeal with no volunteering role.",
            "It reports on past volunteer events only.",
        ],
    ),
    ContentKind.FREE_TRAINING: (
        "free course, training or certification",
        [
            "The provider and the course or program name.",
            "What is taught and any certificate earned.",
            "That it is free (or fully funded) and any conditions.",
            "How to enroll and any start date or deadline.",
        ],
        [
            "It is a paid course, or free only as a short trial before payment.",
            "It is a general list of learning tips without a specific program.",
        ],
    ),
    ContentKind.PROMO: (
        "promotion or free offer",
        [
            "The brand and exactly what is offered.",
            "How to claim it (code, link, steps).",
            "Start and end dates or quantity limits.",
            "Eligibility and restrictions.",
        ],
        [
            "It is an ordinary sale or discount that still requires a purchase.",
            "The offer has expired or is region-locked with no details.",
        ],
    ),
}


BLOG_POST_PROMPT = f"""You copy articles into a structured format without rewriting them.

Rules:
1. Keep the title exactly as given.
2. Keep the content exactly as given, preserving any HTML.
3. Build the excerpt from the first ~150 characters of the plain text.
4. Always set valid to true and confidence_score to 1.0.

Return:
{_BLOG_SHAPE}

Original title: {ORIGINAL_TITLE}

SOURCE CONTENT:
{MATCHED_CONTENT}

{JSON_INSTRUCTION}"""


GENERIC_PROMPT = f"""You review scraped web pages and extract a structured summary.

First decide whether the page has enough substantive, current information to be \
worth publishing. Reject navigation pages, image-only pages, expired offers and \
pages with too little text.

If it is not usable, return exactly:
{_REJECT_SHAPE}

Otherwise return:
{_ACCEPT_SHAPE}

Use only facts present in the source and null for anything it does not state.

Original title: {ORIGINAL_TITLE}

SOURCE CONTENT:
{MATCHED_CONTENT}

{JSON_INSTRUCTION}"""


DEFAULT_PROMPTS: dict[str, str] = {
    kind.value: _opportunity_prompt(*spec) for kind, spec in _OPPORTUNITY_SPECS.items()
}
DEFAULT_PROMPTS[ContentKind.BLOG_POST.value] = BLOG_POST_PROMPT


def default_prompt(content_kind: str) -> str:
    """Return the built-in template for *content_kind*, or the generic one."""
    return DEFAULT_PROMPTS.get(str(content_kind), GENERIC_PROMPT)
