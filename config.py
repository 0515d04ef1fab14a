import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
STATIC_DIR = os.path.join(BASE_DIR, "static")
LOG_FILE = os.path.join(BASE_DIR, "launch.log")
QUIZ_STORE_DIR = os.getenv("QUIZ_STORE_DIR", "")  # 비어 있으면 메모리 저장

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
DEFAULT_TIMEOUT = 15.0

# OpenAI 설정
MODEL_NAME = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
VISION_MODEL_NAME = os.getenv("OPENAI_VISION_MODEL", "gpt-4o-mini")

# 시험 설정
DEFAULT_QUIZ_DURATION_MINUTES = 15
PASS_SCORE = 60.0

# 감독(proctoring) 설정
FULLSCREEN_RETURN_TIMEOUT_SECONDS = int(os.getenv("FULLSCREEN_RETURN_TIMEOUT_SECONDS", "30"))
CAMERA_ANALYSIS_INTERVAL_MS = int(os.getenv("CAMERA_ANALYSIS_INTERVAL_MS", "5000"))
PROCTORING_GRACE_PERIOD_CHECKS = 3   # 이 횟수만큼 샘플링한 뒤부터 부재/마이크 위반으로 일시정지
MIC_ACTIVITY_FLOOR = 0.5             # 주파수 빈 평균이 이 값을 넘어야 마이크 활성
ANALYSER_FFT_SIZE = 256
PAUSE_CLOCK_ON_VIOLATION = os.getenv("PAUSE_CLOCK_ON_VIOLATION", "0") == "1"
