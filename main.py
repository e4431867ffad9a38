"""
main.py — 감독형 서술형 시험 키오스크 앱 진입점

로컬 FastAPI 서버를 띄우고 크롬/엣지를 앱 모드로 열어 시험 화면을 보여준다.

사용법:
    python main.py                    # 빈 포트 자동 선택 + 브라우저 실행
    python main.py --port 8765 --no-browser
"""

import argparse
import logging
import os
import socket
import subprocess
import sys
import threading
import time
import traceback
import webbrowser

# ── 패키지 경로 설정 (반드시 최상단) ──────────────────────────────────────────
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import BASE_DIR, LOG_FILE, DEFAULT_HOST, DEFAULT_PORT, SERVER_START_TIMEOUT

logger = logging.getLogger(__name__)

_BROWSER_CANDIDATES = [
    r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files\Microsoft\Edge\Application\msedge.exe",
    r"C:\Program Files (x86)\Microsoft\Edge\Application\msedge.exe",
    "/usr/bin/google-chrome",
    "/usr/bin/chromium",
]


class _NullStream:
    """windowed(콘솔 없는) 실행 시 stdout/stderr 대체."""
    def write(self, data): pass
    def flush(self): pass
    def isatty(self): return False
    def close(self): pass


def _setup_logging() -> None:
    if sys.stdout is None: sys.stdout = _NullStream()
    if sys.stderr is None: sys.stderr = _NullStream()

    try:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            handlers=[
                logging.FileHandler(LOG_FILE, encoding='utf-8'),
                logging.StreamHandler(sys.stdout),
            ],
        )
    except PermissionError:
        # 로그 파일 점유 시 콘솔 출력만 사용
        logging.basicConfig(level=logging.INFO)


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Proctored Q&A test kiosk")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT,
                        help="서버 포트 (0 이면 빈 포트 자동 선택)")
    parser.add_argument("--no-browser", action="store_true",
                        help="브라우저를 자동으로 열지 않음")
    return parser.parse_args(argv)


# ── 서버 및 네트워크 유틸 ───────────────────────────────────────────────────

def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((DEFAULT_HOST, 0))
        return s.getsockname()[1]


def _wait_for_server(port: int, timeout: float = SERVER_START_TIMEOUT) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((DEFAULT_HOST, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _open_browser(url: str) -> None:
    # 전체화면 진입은 페이지에서 사용자 제스처로 요청해야 하므로 앱 창으로만 연다
    flags = [f"--app={url}", "--no-first-run", "--window-size=1280,800"]
    for path in _BROWSER_CANDIDATES:
        if os.path.exists(path):
            logger.info(f"브라우저 실행: {path}")
            subprocess.Popen([path] + flags)
            return
    webbrowser.open(url)


def _serve(port: int) -> None:
    try:
        import uvicorn
        from api.app import create_app
        logger.info(f"Uvicorn 서버 시작 - Port: {port}")
        uvicorn.run(create_app(), host=DEFAULT_HOST, port=port, log_level="warning")
    except Exception:
        logger.error(f"서버 오류 발생:\n{traceback.format_exc()}")


# ── 메인 실행 ────────────────────────────────────────────────────────────────

def main(argv=None) -> int:
    args = _parse_args(argv)
    _setup_logging()
    logger.info("=== Proctored Q&A Test Application Started ===")
    os.chdir(BASE_DIR)

    port = args.port or _find_free_port()
    threading.Thread(target=_serve, args=(port,), daemon=True).start()

    if not _wait_for_server(port):
        logger.error("서버 시작 제한 시간을 초과했습니다. 작업 관리자에서 기존 프로세스를 종료해 보세요.")
        return 1

    url = f"http://{DEFAULT_HOST}:{port}"
    logger.info(f"서버 준비 완료: {url}")
    if not args.no_browser:
        _open_browser(url)

    try:
        while True:
            time.sleep(10)
    except KeyboardInterrupt:
        logger.info("사용자에 의해 종료되었습니다.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
