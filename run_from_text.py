# run_from_text.py

import asyncio
import sys
from pathlib import Path

from mathword.app_logic import convert_text_to_docx
from mathword.config import configure_logging
from mathword.errors import ApiKeyInvalidError, ApiKeyMissingError

# 定义默认的输入和输出文件名
INPUT_TEXT_FILE = 'data/converted_text.md'
OUTPUT_DOCX_FILE = 'output_from_text.docx'


def main(argv=None):
    """
    Converts a text file with `$...$` formulas into a Word document.

    Usage: python run_from_text.py [input.md] [output.docx] [--correct]
    """
    configure_logging()
    args = list(sys.argv[1:] if argv is None else argv)
    correct = '--correct' in args
    args = [a for a in args if a != '--correct']
    input_path = Path(args[0] if args else INPUT_TEXT_FILE)
    output_path = Path(args[1] if len(args) > 1 else OUTPUT_DOCX_FILE)

    print(f"📄 Reading '{input_path}'...")
    try:
        text = input_path.read_text(encoding='utf-8')
    except (FileNotFoundError, UnicodeDecodeError) as e:
        print(f"Error: cannot read the input file -> {e}")
        return 1

    try:
        docx_bytes, _, log = asyncio.run(convert_text_to_docx(text, correct=correct, logger=print))
    except (ApiKeyMissingError, ApiKeyInvalidError):
        print("❌ Set a valid GEMINI_API_KEY to use --correct.")
        return 1
    if docx_bytes is None:
        print("❌ Conversion failed.")
        return 1

    output_path.write_bytes(docx_bytes)
    print(f"🎉 Document saved as '{output_path}'!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
