import argparse

from regression_pipeline.pipeline import PipelineRunner


def main() -> None:
    """Run cross-validated model selection end to end."""
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("--config", default="config/default.yaml", help="Path to the YAML config")
    args = parser.parse_args()

    runner = PipelineRunner(args.config)
    runner.run()


if __name__ == "__main__":
    main()
