import os
import sys

# 기본 디렉토리 설정 (PyInstaller 번들 실행 시 _MEIPASS 사용)
IF_FROZEN = getattr(sys, "frozen", False)
BASE_DIR = sys._MEIPASS if IF_FROZEN else os.path.dirname(os.path.abspath(__file__))

# 경로 설정
STATIC_DIR = os.path.join(BASE_DIR, "static")
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "0"))       # 0 이면 빈 포트 자동 선택
SERVER_START_TIMEOUT = 15.0

# 학습 플랫폼 백엔드 설정
BACKEND_API_URL = os.getenv("BACKEND_API_URL", "http://localhost:8000/api")
BACKEND_TIMEOUT = float(os.getenv("BACKEND_TIMEOUT", "15"))

# 세션 설정
SESSION_TTL = 3600              # 1시간 (마지막 접근 기준)
SESSION_CLEANUP_INTERVAL = 300  # 5분

# 시험 진행 타이밍 (초)
COUNTDOWN_TICK_SECONDS = 1.0     # 카운트다운 1틱
FULLSCREEN_POLL_SECONDS = 0.5    # 전체화면 준수 폴링 주기
FULLSCREEN_REENTRY_DELAY = 1.0   # 이탈 경고 후 재진입 요청까지 대기
FULLSCREEN_CONFIRM_DELAY = 0.3   # 시작 시 전체화면 진입 확인 대기
START_RETRY_DELAY = 0.5          # 시작 시 전체화면 재시도 간격
START_ATTEMPTS = 2               # 시작 시 전체화면 요청 횟수 (최초 + 재시도)
BROWSER_FULLSCREEN_TIMEOUT = 3.0 # 브라우저가 전체화면 진입을 보고할 때까지 대기
