import logging
import signal
import threading

from .config import get_config_path, get_last_warnings, load_config
from .logging_setup import install_fault_hooks, setup_logging
from .runtime import CollectorRunner, build_context

logger = logging.getLogger("ewbf_collect")


def _install_signal_handlers() -> None:
    # Both signals only produce a log line; runtime behavior is unchanged.
    if hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, lambda signum, frame: logger.info("Reloading..."))

    def _on_term(signum, frame):
        logger.info("Stopping...")
        # Only the first SIGTERM is swallowed; the next one terminates.
        signal.signal(signal.SIGTERM, signal.SIG_DFL)

    signal.signal(signal.SIGTERM, _on_term)


def run() -> None:
    cfg = load_config()
    setup_logging(cfg)
    install_fault_hooks()
    _install_signal_handlers()

    logger.info("Starting ewbf-collect...")
    logger.info("Config: %s", get_config_path())
    for w in get_last_warnings():
        logger.warning(w)

    ctx = build_context(cfg, logger)
    runner = CollectorRunner(ctx)

    env_str = "" if cfg.env == "prod" else f" in {cfg.env} mode"
    logger.info("Started ewbf-collect%s.", env_str)
    runner.start()

    # Runs until killed; the runner thread is a daemon.
    forever = threading.Event()
    try:
        while not forever.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Collector stopped by user")
        runner.stop()
        ctx.close()


if __name__ == "__main__":
    run()
