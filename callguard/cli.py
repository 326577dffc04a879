"""
callguard/cli.py
Command-line interface for CallGuard.

USAGE:
  callguard serve [--host 127.0.0.1] [--port 8765]
  callguard analyze "SBI bank se bol raha hoon, apna OTP batayein"
  callguard analyze --backend openai --model gpt-4o-mini "..."
  callguard list-models

Settings come from callguard_config.json in --config-dir (default: cwd),
then environment overrides, then command-line flags.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from callguard import __version__
from callguard.alerts import ALERT_BLOCK, ALERT_WARN, alert_level, badge_color
from callguard.config import build_classifier, load_config, validate_config
from callguard.detectors.scam_detector import analyze_transcription
from callguard.errors import ConfigError
from callguard.storage.memory_store import MemoryStore

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'

LEVEL_COLORS = {ALERT_BLOCK: RED, ALERT_WARN: YELLOW}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'callguard',
        description = 'CallGuard — live call scam detection backend',
    )
    parser.add_argument(
        '--config-dir',
        type    = Path,
        default = None,
        help    = 'Directory holding callguard_config.json (default: current directory)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    sub = parser.add_subparsers(dest='command', required=True)

    serve = sub.add_parser('serve', help='Run the HTTP API')
    serve.add_argument('--host', default=None, help='Bind address (default from config: 127.0.0.1)')
    serve.add_argument('--port', type=int, default=None, help='Port (default from config: 8765)')

    analyze = sub.add_parser('analyze', help='Classify one text and print the verdict')
    analyze.add_argument('text', help='Transcribed text to analyze')
    analyze.add_argument('--speaker', default='Caller', help='Speaker label (default: Caller)')
    analyze.add_argument('--backend', choices=('ollama', 'openai'), default=None)
    analyze.add_argument('--model', '-m', default=None, help='Model name for the backend')

    sub.add_parser('list-models', help='List locally available Ollama models')
    return parser


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level   = logging.DEBUG if args.verbose else logging.INFO,
        format  = '%(asctime)s %(levelname)-7s %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    config = load_config(args.config_dir)
    if getattr(args, 'backend', None):
        config['backend'] = args.backend
    if getattr(args, 'model', None):
        config['model'] = args.model
    try:
        validate_config(config)
    except ConfigError as e:
        print(f"{RED}Config error: {e}{RESET}", file=sys.stderr)
        return 2

    if args.command == 'serve':
        return _serve(args, config)
    if args.command == 'analyze':
        return asyncio.run(_analyze(args, config))
    if args.command == 'list-models':
        return _list_models(config)
    return 1


# ── COMMANDS ─────────────────────────────────────────────────

def _serve(args, config) -> int:
    import uvicorn
    from callguard.api import create_app

    host = args.host or config['host']
    port = args.port or int(config['port'])
    server_app = create_app(config=config, project_root=args.config_dir)

    print(f"""
{BOLD}CallGuard API v{__version__}{RESET}
  Local:   http://{host}:{port}{config['api_prefix']}
  Docs:    http://{host}:{port}/docs
  Health:  http://{host}:{port}/health
  Backend: {config['backend']} | Storage: {config['storage']}
""")
    uvicorn.run(server_app, host=host, port=port, log_level='info')
    return 0


async def _analyze(args, config) -> int:
    store = MemoryStore()
    session = store.create_session()
    classifier = build_classifier(config)

    outcome = await analyze_transcription(
        text       = args.text,
        session_id = session.id,
        store      = store,
        classifier = classifier,
        speaker    = args.speaker,
        min_length = int(config['min_transcription_length']),
    )
    if outcome is None:
        print(
            f"{YELLOW}Text too short to analyze "
            f"(minimum {config['min_transcription_length']} characters).{RESET}"
        )
        return 1

    verdict = outcome.analysis
    level = alert_level(
        verdict,
        block_threshold = int(config['block_threshold']),
        warn_threshold  = int(config['warn_threshold']),
    )
    color = LEVEL_COLORS.get(level, GREEN)
    print(f"{BOLD}Verdict:{RESET}    {color}{'SCAM' if verdict.is_scam else 'OK'} ({level}){RESET}")
    print(f"{BOLD}Confidence:{RESET} {verdict.confidence}% [{badge_color(verdict.confidence)}]")
    print(f"{BOLD}Type:{RESET}       {verdict.scam_type}")
    if verdict.patterns:
        print(f"{BOLD}Patterns:{RESET}   {', '.join(verdict.patterns)}")
    print(f"{BOLD}Analysis:{RESET}   {verdict.analysis}")
    print(f"{CYAN}Model: {verdict.model_used or 'n/a'}{RESET}")
    return 0


def _list_models(config) -> int:
    from callguard.llm.ollama_adapter import OllamaAdapter
    adapter = OllamaAdapter(host=config['ollama_host'])
    models = adapter.list_available_models()
    if not models:
        print(f"{YELLOW}No models found at {config['ollama_host']}. Is Ollama running?{RESET}")
        return 1
    for name in models:
        print(f"  {name}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
