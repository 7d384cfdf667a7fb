"""Entry point for Löyly."""

import logging

from loyly.engine.save import default_save_dir


def main() -> None:
    # Log to a file; the terminal belongs to the UI
    log_dir = default_save_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=log_dir / "loyly.log",
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from loyly.app import LoylyApp

    app = LoylyApp()
    app.run()


if __name__ == "__main__":
    main()
