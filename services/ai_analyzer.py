import re
import asyncio
import logging
from datetime import datetime, timezone

from fastapi import Request
from google import genai
from google.genai import types

from services.errors import UpstreamError, UpstreamTimeout
from services.parsers import parse_model_json


logger = logging.getLogger(__name__)

MIN_ANALYSIS_TEXT = 50


ANALYSIS_PROMPT = """
You are an expert HR recruiter and career advisor. Analyze the resume provided by the user.

Return output strictly as valid JSON with the following structure:
{
  "summary": "Brief 2-3 sentence professional summary",
  "skills": {
    "technical": ["list of technical skills"],
    "soft": ["list of soft skills"],
    "tools": ["list of tools/technologies"]
  },
  "experience": {
    "totalYears": "estimated total years of experience",
    "level": "Junior/Mid-Level/Senior/Expert",
    "roles": ["list of key roles/positions held"]
  },
  "education": {
    "degrees": ["list of degrees"],
    "institutions": ["list of schools/universities"],
    "certifications": ["list of certifications if any"]
  },
  "strengths": ["list 3-5 key strengths"],
  "areasForImprovement": ["list 2-3 areas to improve"],
  "recommendedRoles": ["list 3-5 job roles this candidate is suitable for"],
  "interviewFocus": ["list 3-5 key areas to focus on during interview"],
  "overallScore": "score from 1-10 based on resume quality and completeness",
  "scoreReasoning": "brief explanation of the score"
}

Respond ONLY with valid JSON, no additional text.
"""

QUESTIONS_PROMPT = """
You are an experienced technical interviewer. Generate interview questions for the role and
difficulty given by the user.

Return output strictly as a JSON array where every element has this shape:
{
  "question": "string",
  "difficulty": "easy|medium|hard",
  "category": "string (topic of the question)",
  "timeLimit": "integer, seconds the candidate gets to answer",
  "expectedAnswer": "string (short model answer)"
}

Only return the JSON array. No extra commentary.
"""

STATIC_FALLBACK_ANALYSIS = {
    "summary": "Resume analysis unavailable - using basic extraction",
    "skills": {"technical": [], "soft": [], "tools": []},
    "experience": {"totalYears": "Unknown", "level": "Unknown", "roles": []},
    "education": {"degrees": [], "institutions": [], "certifications": []},
    "strengths": ["Experience in the field"],
    "areasForImprovement": ["Analysis unavailable"],
    "recommendedRoles": ["Pending detailed analysis"],
    "interviewFocus": ["General competency assessment"],
    "overallScore": "N/A",
    "scoreReasoning": "AI analysis failed - manual review recommended",
}

SKILL_PATTERNS = [
    "javascript", "python", "java", "react", "node", "html", "css", "sql", "mongodb", "express",
    "angular", "vue", "typescript", "php", "c++", "c#", "ruby", "go", "rust", "swift",
    "flutter", "dart", "android", "ios", "aws", "azure", "docker", "kubernetes", "git",
    "machine learning", "data science", "tensorflow", "pytorch",
]
TOOL_SKILLS = ("git", "docker", "aws", "azure", "kubernetes")

FALLBACK_QUESTIONS = {
    "easy": [
        {
            "question": "What is the difference between let, const, and var in JavaScript?",
            "category": "JavaScript",
            "timeLimit": 120,
            "expectedAnswer": "var is function-scoped and hoisted, let and const are block-scoped; const cannot be reassigned.",
        },
        {
            "question": "What is a REST API and which HTTP methods does it typically use?",
            "category": "Web Fundamentals",
            "timeLimit": 120,
            "expectedAnswer": "An API over HTTP that models resources; GET, POST, PUT/PATCH and DELETE map to read, create, update and delete.",
        },
    ],
    "medium": [
        {
            "question": "Explain how React's virtual DOM works and why it's beneficial for performance.",
            "category": "React",
            "timeLimit": 180,
            "expectedAnswer": "React diffs virtual DOM trees to find the minimal set of real DOM changes, avoiding expensive DOM operations.",
        },
        {
            "question": "What are the differences between SQL and NoSQL databases? Give examples of each.",
            "category": "Database Design",
            "timeLimit": 180,
            "expectedAnswer": "SQL databases are relational with fixed schemas (PostgreSQL, MySQL); NoSQL stores have flexible schemas (MongoDB, Redis).",
        },
    ],
    "hard": [
        {
            "question": "Design a rate limiting system that can handle millions of requests per second. Explain the trade-offs.",
            "category": "System Design",
            "timeLimit": 300,
            "expectedAnswer": "Distributed counters (e.g. Redis) with sliding window or token bucket, trading consistency against availability and latency.",
        },
        {
            "question": "How would you implement real-time collaborative editing in a web application?",
            "category": "System Design",
            "timeLimit": 300,
            "expectedAnswer": "WebSockets for transport, operational transforms or CRDTs for conflict resolution, and handling of reconnects.",
        },
    ],
}


def create_gemini_client(api_key, timeout_seconds):
    if not api_key:
        return None
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
    )


def extract_contact_details(content: str) -> dict:
    email_match = re.search(r"[\w.-]+@[\w.-]+\.\w+", content)
    phone_match = re.search(r"\+?\(?\d[\d\s\-()]{8,}\d", content)
    name_match = re.search(r"(?:Name|Full Name|Candidate):\s*([A-Z][a-zA-Z ]+)", content, re.IGNORECASE)
    if not name_match:
        name_match = re.search(r"^\s*([A-Z][a-z]+ [A-Z][a-z]+)\s*$", content, re.MULTILINE)

    return {
        "name": name_match.group(1).strip() if name_match else "Professional Candidate",
        "email": email_match.group(0) if email_match else "",
        "phone": re.sub(r"\D", "", phone_match.group(0)) if phone_match else "",
    }


def build_fallback_analysis(content: str, metadata: dict) -> dict:
    """Pattern-matching analysis used when no AI provider is configured."""
    text = content.lower()

    technical = []
    for skill in SKILL_PATTERNS:
        if re.search(rf"(?<![\w+#]){re.escape(skill)}(?![\w+#])", text):
            technical.append(skill.title() if len(skill) > 3 else skill.upper())

    degrees = []
    if "bachelor" in text:
        degrees.append("Bachelor's Degree")
    if "master" in text:
        degrees.append("Master's Degree")
    if "phd" in text or "doctorate" in text:
        degrees.append("PhD")
    institutions = re.findall(r"[A-Z][a-z]+ (?:University|Institute|College|School)", content)[:3]

    current_year = datetime.now(timezone.utc).year
    years = sorted(int(y) for y in re.findall(r"\b(?:19|20)\d{2}\b", content) if int(y) <= current_year)
    experience_years = max(0, current_year - years[0]) if len(years) > 1 else 0

    if experience_years >= 5:
        level = "Senior"
    elif experience_years >= 2:
        level = "Mid-Level"
    elif experience_years >= 1:
        level = "Junior"
    else:
        level = "Entry Level"

    if experience_years:
        summary = f"Professional with {experience_years} years of experience in technology and software development."
    else:
        summary = "Professional with an educational background in technology and software development."
    if technical:
        summary += f" Skilled in {', '.join(technical[:3])}."

    return {
        **extract_contact_details(content),
        "summary": summary + " Ready for interview assessment.",
        "skills": {
            "technical": technical[:10],
            "soft": ["Communication", "Problem Solving", "Teamwork", "Adaptability"],
            "tools": [s for s in technical if s.lower() in TOOL_SKILLS],
        },
        "experience": {"totalYears": str(experience_years), "level": level, "roles": []},
        "education": {
            "degrees": degrees,
            "institutions": institutions,
            "certifications": [],
        },
        "strengths": ["Technical Skills", "Resume Organization",
                      "Diverse Technology Stack" if len(technical) > 5 else "Focused Skill Set"],
        "areasForImprovement": ["Professional Experience Details", "Certification Acquisition"],
        "recommendedRoles": [],
        "interviewFocus": ["Technical Problem Solving", "Project Experience", "Communication Skills"],
        "overallScore": str(min(8, max(5, 5 + len(technical) // 2))),
        "scoreReasoning": f"Score based on {len(technical)} extracted technical skills. AI analysis unavailable.",
        "analyzedAt": datetime.now(timezone.utc).isoformat(),
        "metadata": {**metadata, "analysisMethod": "Text Pattern Matching (Fallback)", "aiServiceStatus": "Unavailable"},
    }


class AnalysisOutcome:
    def __init__(self, success, data, error=None, note=None):
        self.success = success
        self.data = data
        self.error = error
        self.note = note


class ResumeAnalyzer:
    """Gemini-backed resume analysis and question generation.

    Provider responses are untrusted: anything that does not parse into the
    expected JSON shape is treated as a provider failure, and every failure
    is reported together with a fallback payload instead of being raised.
    """

    def __init__(self, client, model="gemini-2.5-flash", timeout=60.0):
        self.client = client
        self.model = model
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def _generate(self, system_prompt: str, contents: str) -> str:
        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=types.GenerateContentConfig(
                        thinking_config=types.ThinkingConfig(thinking_budget=1),
                        system_instruction=system_prompt,
                        response_mime_type="application/json",
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise UpstreamTimeout(f"Gemini did not respond within {self.timeout:g}s")
        except Exception as e:
            raise UpstreamError(f"Gemini request failed: {e}") from e
        return response.text or ""

    async def analyze_resume(self, content: str, metadata: dict) -> AnalysisOutcome:
        if not self.configured or len(content.strip()) < MIN_ANALYSIS_TEXT:
            logger.info(f"Using fallback analysis for '{metadata.get('fileName')}'")
            return AnalysisOutcome(
                True,
                build_fallback_analysis(content, metadata),
                note="Analysis created from text extraction (AI service unavailable)",
            )

        try:
            text = await self._generate(ANALYSIS_PROMPT, f"Resume Content:\n{content}")
            try:
                analysis = parse_model_json(text)
            except ValueError as e:
                raise UpstreamError(str(e))
            if not isinstance(analysis, dict):
                raise UpstreamError("Model response is not a JSON object")
        except UpstreamError as e:
            logger.warning(f"Resume analysis failed for '{metadata.get('fileName')}': {e}")
            return AnalysisOutcome(False, dict(STATIC_FALLBACK_ANALYSIS), error=str(e))

        analysis.update(extract_contact_details(content))
        analysis["analyzedAt"] = datetime.now(timezone.utc).isoformat()
        analysis["metadata"] = metadata
        return AnalysisOutcome(True, analysis)

    async def generate_questions(self, role: str, difficulty: str, count: int) -> AnalysisOutcome:
        if self.configured:
            try:
                text = await self._generate(
                    QUESTIONS_PROMPT,
                    f"Role: {role}\nDifficulty: {difficulty}\nNumber of questions: {count}",
                )
                try:
                    questions = parse_model_json(text)
                except ValueError as e:
                    raise UpstreamError(str(e))
                if isinstance(questions, dict):
                    questions = questions.get("questions")
                if not isinstance(questions, list) or not all(isinstance(q, dict) and q.get("question") for q in questions):
                    raise UpstreamError("Model response is not a list of questions")
                return AnalysisOutcome(True, questions[:count])
            except UpstreamError as e:
                logger.warning(f"Question generation failed for role '{role}': {e}")
                error = str(e)
        else:
            error = "AI service not configured"

        return AnalysisOutcome(
            False,
            fallback_questions(difficulty, count),
            error=error,
            note="Using offline fallback questions (AI service unavailable)",
        )


def fallback_questions(difficulty: str, count: int) -> list:
    bank = FALLBACK_QUESTIONS.get(difficulty, FALLBACK_QUESTIONS["medium"])
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    return [
        {"id": f"{difficulty}_{stamp}_{i}", "difficulty": difficulty, **question}
        for i, question in enumerate(bank[:count])
    ]


def get_analyzer(request: Request) -> ResumeAnalyzer:
    return request.app.state.analyzer
