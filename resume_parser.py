"""Resume text extraction keyed by the uploaded file's extension."""

import logging
import os

from errors import ExtractionFailed, UnsupportedFileType

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'pdf', 'docx', 'txt'}


def file_extension(filename: str) -> str:
    if '.' not in (filename or ''):
        return ''
    return filename.rsplit('.', 1)[1].lower()


def allowed_file(filename: str) -> bool:
    return file_extension(filename) in ALLOWED_EXTENSIONS


def extract_text(file_path: str, original_filename: str) -> str:
    """Extract plain text from a stored upload.

    The parser is chosen from ``original_filename`` since the stored name may
    have been rewritten.
    """
    ext = file_extension(original_filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise UnsupportedFileType(f'Unsupported file type: .{ext}' if ext else 'Unsupported file type')

    try:
        if ext == 'pdf':
            text = _extract_pdf(file_path)
        elif ext == 'docx':
            text = _extract_docx(file_path)
        else:
            with open(file_path, 'r', encoding='utf-8', errors='ignore') as f:
                text = f.read()
    except Exception as e:
        logger.warning('Text extraction failed for %s: %s', os.path.basename(file_path), e)
        raise ExtractionFailed('Failed to extract text from file') from e

    logger.info('Extracted %d chars from %s resume', len(text), ext)
    return text


def _extract_pdf(filepath: str) -> str:
    import pdfplumber
    text_parts = []
    with pdfplumber.open(filepath) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)
    return '\n'.join(text_parts)


def _extract_docx(filepath: str) -> str:
    from docx import Document
    doc = Document(filepath)
    return '\n'.join(para.text for para in doc.paragraphs if para.text.strip())
