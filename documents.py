# documents.py
import logging
from dataclasses import dataclass

from models import Command, WorkFailed, register_command

logger = logging.getLogger(__name__)


@dataclass
class DocumentCommand(Command):
    document: str

    def execute(self):
        if not self.document:
            raise WorkFailed(f"{type(self).__name__}: no document given")
        self.process()
        return []

    def process(self):
        raise NotImplementedError


@register_command("print_document")
@dataclass
class PrintDocumentCommand(DocumentCommand):
    def process(self):
        logger.info("PrintDocumentCommand: Printing document '%s'.", self.document)


@register_command("save_document")
@dataclass
class SaveDocumentCommand(DocumentCommand):
    def process(self):
        logger.info("SaveDocumentCommand: Saving document '%s'.", self.document)


@register_command("convert_document")
@dataclass
class ConvertDocumentCommand(DocumentCommand):
    target_format: str = "pdf"

    def process(self):
        logger.info(
            "ConvertDocumentCommand: Converting document '%s' to %s.", self.document, self.target_format
        )


def document_pipeline(document):
    return [PrintDocumentCommand(document), SaveDocumentCommand(document), ConvertDocumentCommand(document)]
