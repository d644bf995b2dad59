"""Package entry point for ``python -m lesson_review``.

WHY: Users run the tool as ``python -m lesson_review windows class.txt``
without installing the console script.

HOW: Delegates to the CLI's main() function.
"""

from lesson_review.cli import main

if __name__ == "__main__":
    main()
