# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import unittest
from unittest.mock import patch

from import_pipeline import pdf_text
from import_pipeline.pdf_test_utils import BUDGET_PAGE, MINUTES_PAGE, make_pdf


class ExtractPageTextsTest(unittest.TestCase):

    def test_returns_one_string_per_page(self):
        pdf_data = make_pdf([MINUTES_PAGE, [], BUDGET_PAGE])

        page_texts = pdf_text.extract_page_texts(pdf_data)

        self.assertEqual(len(page_texts), 3)
        self.assertIn("owners association", page_texts[0])
        self.assertEqual(page_texts[1].strip(), "")
        self.assertIn("reserve fund", page_texts[2])

    def test_unreadable_pdf_raises_value_error(self):
        with self.assertRaises(ValueError):
            pdf_text.extract_page_texts(b"this is not a pdf")

    def test_count_pages(self):
        self.assertEqual(pdf_text.count_pages(make_pdf([[], [], []])), 3)
        with self.assertRaises(ValueError):
            pdf_text.count_pages(b"")

    def test_first_page_text_falls_back_to_empty(self):
        with patch(
            "import_pipeline.pdf_text.pdfminer_extract_text",
            side_effect=RuntimeError("broken"),
        ):
            self.assertEqual(pdf_text.extract_first_page_text(b"%PDF"), "")


class ExtractabilityTest(unittest.TestCase):

    def test_meaningful_chars_ignore_whitespace_punctuation_and_markers(self):
        self.assertEqual(pdf_text.meaningful_char_count("a b, c!"), 3)
        self.assertEqual(pdf_text.meaningful_char_count("管理組合"), 4)
        self.assertEqual(pdf_text.meaningful_char_count("(cid:12)(cid:7)ab"), 2)

    def test_garbage_ratio(self):
        self.assertEqual(pdf_text.garbage_ratio(""), 0.0)
        self.assertEqual(pdf_text.garbage_ratio("��"), 1.0)
        self.assertAlmostEqual(pdf_text.garbage_ratio("abcd�"), 0.25)

    def test_text_document_is_extractable(self):
        page_texts = pdf_text.extract_page_texts(make_pdf([MINUTES_PAGE, BUDGET_PAGE]))
        self.assertTrue(pdf_text.is_text_extractable(page_texts))

    def test_scanned_document_is_not_extractable(self):
        """Mostly image-only pages fail the textual page ratio."""
        page_texts = ["", "", " ".join(MINUTES_PAGE)]
        self.assertFalse(pdf_text.is_text_extractable(page_texts))

    def test_half_textual_pages_is_enough(self):
        page_texts = [" ".join(MINUTES_PAGE + BUDGET_PAGE), ""]
        self.assertTrue(pdf_text.is_text_extractable(page_texts))

    def test_too_little_text_is_not_extractable(self):
        page_texts = ["Grand Palace Tokyo general assembly minutes"]
        self.assertTrue(pdf_text.is_textual_page(page_texts[0]))
        self.assertFalse(pdf_text.is_text_extractable(page_texts))

    def test_broken_font_mapping_is_not_extractable(self):
        garbled = " ".join(["(cid:34)(cid:12) word"] * 40)
        self.assertFalse(pdf_text.is_textual_page(garbled))
        self.assertFalse(pdf_text.is_text_extractable([garbled, garbled]))

    def test_no_pages_is_not_extractable(self):
        self.assertFalse(pdf_text.is_text_extractable([]))


class PageTextsToMarkdownTest(unittest.TestCase):

    def test_rejoins_wrapped_lines_into_paragraphs(self):
        markdown = pdf_text.page_texts_to_markdown(
            ["The board approved\nthe budget.\nNext   item\n\nfollows here"]
        )
        self.assertEqual(
            markdown, "The board approved the budget.\n\nNext item\n\nfollows here"
        )

    def test_japanese_lines_join_without_spaces(self):
        markdown = pdf_text.page_texts_to_markdown(["理事会は予算を\n承認した。\n次の議題"])
        self.assertEqual(markdown, "理事会は予算を承認した。\n\n次の議題")

    def test_pages_are_separated_and_markers_removed(self):
        markdown = pdf_text.page_texts_to_markdown(
            ["First page.", "", "Second (cid:3)page."]
        )
        self.assertEqual(markdown, "First page.\n\nSecond page.")


if __name__ == "__main__":
    unittest.main()
