ASSISTANCE_PROMPT = """
Analyze this interview response and provide assistance.

Question: {question}
Candidate's Answer: {candidate_answer}
Job Description: {job_description}

Return JSON only:
{{
  "suggestion": "Improved answer",
  "keyPoints": ["point1", "point2"],
  "confidence": 0.7,
  "improvements": ["area1", "area2"],
  "score": 7
}}
"""

QUESTIONS_PROMPT = """
Generate {count} interview questions for a {interview_type} interview.

Job Description: {job_description}
Candidate Resume: {resume}

Return a JSON array only:
[
  {{
    "question": "Question text",
    "category": "technical|behavioral|general",
    "difficulty": "easy|medium|hard",
    "expectedPoints": ["point1", "point2"]
  }}
]
"""

PERFORMANCE_PROMPT = """
Analyze this interview performance.

Questions and Responses:
{transcript}

Job Description: {job_description}

Return JSON only:
{{
  "assessment": "Overall assessment",
  "strengths": ["strength1"],
  "weaknesses": ["weakness1"],
  "score": 7,
  "recommendation": "pass|fail|consider|strong_pass",
  "detailedFeedback": "Detailed feedback"
}}
"""

TECHNICAL_HELP_PROMPT = """
A candidate asked a technical question during an interview.

Question: {question}
Context: {context}

Answer clearly and concisely for an interview setting: explain the concept,
give a practical example where relevant, and note common pitfalls.

Return JSON only:
{{
  "answer": "Structured answer text"
}}
"""
