from .steps import (
    Step,
    Steps,
    StepAction,
    extract_steps_block,
    parse_steps,
    split_instructions,
)

__all__ = ["Step",
           "Steps",
           "StepAction",
           "extract_steps_block",
           "parse_steps",
           "split_instructions"]
