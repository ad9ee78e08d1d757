# mathword/app_logic.py
from typing import Callable, Iterable, List, Optional

from .ai_corrector import GeminiClient, correct_text
from .config import Settings, get_settings
from .doc_generator import create_document
from .errors import AiServiceError, ApiKeyInvalidError, ApiKeyMissingError
from .schemas import ImageAsset


async def convert_text_to_docx(
        text: str,
        *,
        correct: bool = False,
        images: Optional[Iterable[ImageAsset]] = None,
        settings: Optional[Settings] = None,
        client: Optional[GeminiClient] = None,
        logger: Optional[Callable[[str], None]] = None
) -> tuple[bytes | None, str, str]:
    """
    协调完整的转换流程：可选的AI纠错，然后生成 DOCX 文档。

    Args:
        text (str): OCR text with `$...$` formulas.
        correct (bool): Whether to send the text through the AI correction service first.
        images (Optional[Iterable[ImageAsset]]): Images for `[[IMG:page:id]]` placeholders.
        settings (Optional[Settings]): Overrides the process settings.
        client (Optional[GeminiClient]): AI client to use when `correct` is set.
        logger (Optional[Callable[[str], None]]): 用于流式日志记录的回调函数。

    Returns:
        tuple[bytes | None, str, str]: 文档字节流、最终文本和完整日志。

    Raises:
        ApiKeyMissingError, ApiKeyInvalidError: When correction is requested without a usable key.
    """
    settings = settings or get_settings()
    log_stream = []

    def log(message: str):
        log_stream.append(message)
        if logger:
            logger(message)

    log("🚀 Conversion started...")
    final_text = text

    if correct:
        log("🤖 Sending text to the AI correction service...")
        try:
            final_text = await correct_text(
                text,
                client=client or GeminiClient(settings),
                on_progress=lambda pct, message: log(f"  [{pct}%] {message}")
            )
        except (ApiKeyMissingError, ApiKeyInvalidError) as e:
            log(f"🔑 AI correction needs a valid API key: {e}")
            raise
        except AiServiceError as e:
            log(f"❌ AI correction failed: {type(e).__name__}: {e}")
            return None, text, "\n".join(log_stream)
        log("✅ AI correction finished.")

    log("📄 Building the Word document...")
    docx_bytes = create_document(
        final_text,
        images,
        title=settings.doc_title,
        font_name=settings.doc_font_name,
        font_size=settings.doc_font_size,
        max_depth=settings.math_max_depth,
    )
    log(f"✅ Document generated ({len(docx_bytes)} bytes).")
    return docx_bytes, final_text, "\n".join(log_stream)


async def convert_batch(texts: Iterable[str], **kwargs) -> List[bytes | None]:
    """Converts each text to its own document; options are passed to `convert_text_to_docx`."""
    results = []
    for text in texts:
        docx_bytes, _, _ = await convert_text_to_docx(text, **kwargs)
        results.append(docx_bytes)
    return results
