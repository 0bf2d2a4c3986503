"""Package entry point for ``python -m guided_reader``.

WHY: Users run ``python -m guided_reader render chapter.html`` without
installing the console script.

HOW: Delegates straight to the CLI's main() function.
"""

if __name__ == "__main__":
    from guided_reader.cli import main
    main()
