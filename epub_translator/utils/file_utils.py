"""
Output path helpers for the CLI
"""
from pathlib import Path


def default_output_path(input_path: str, target_lang: str) -> str:
    """book.epub -> book_zh.epub"""
    path = Path(input_path)
    return str(path.with_name(f"{path.stem}_{target_lang.lower()}.epub"))


def get_unique_output_path(output_path: str) -> str:
    """
    Generate a unique output path by adding a number suffix if the file already exists.

    Examples:
        book.epub -> book.epub (if doesn't exist)
        book.epub -> book (1).epub (if book.epub exists)
        book.epub -> book (2).epub (if book.epub and book (1).epub exist)
    """
    path = Path(output_path)
    if not path.exists():
        return output_path

    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem} ({counter}){path.suffix}")
        if not candidate.exists():
            return str(candidate)
        counter += 1
