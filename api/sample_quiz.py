"""
api/sample_quiz.py — 체험용 샘플 퀴즈 (문제 생성기 없이 감독 흐름을 확인할 때 사용)
"""

from proctored_exam.models.question_model import McqQuestion, QuizDraft

SAMPLE_QUIZ = QuizDraft(
    topic="Computer Networks",
    duration_minutes=10,
    questions=[
        McqQuestion(
            question="Which layer of the OSI model is responsible for routing packets between networks?",
            options=["Data link layer", "Network layer", "Transport layer", "Session layer"],
            correct_answer_index=1,
        ),
        McqQuestion(
            question="Which protocol provides reliable, ordered delivery of a byte stream?",
            options=["UDP", "ICMP", "TCP", "ARP"],
            correct_answer_index=2,
        ),
        McqQuestion(
            question="What is the default port for HTTPS?",
            options=["80", "21", "443", "8080"],
            correct_answer_index=2,
        ),
        McqQuestion(
            question="Which record type maps a hostname to an IPv6 address in DNS?",
            options=["A", "AAAA", "MX", "CNAME"],
            correct_answer_index=1,
        ),
        McqQuestion(
            question="How many usable host addresses are in a /30 IPv4 subnet?",
            options=["2", "4", "6", "30"],
            correct_answer_index=0,
        ),
    ],
)
