"""Tests for agentpm.lib.xmlfix module."""

from agentpm.lib.xmlfix import fix_xml_text, parse_error


class TestFixXmlText:
    """Tests for fix_xml_text()."""

    def test_well_formed_text_untouched(self):
        """Valid references, numeric ones included, are left alone."""
        text = '<epic id="e"><description>a &amp; b &lt; c &#38; &#x26;</description></epic>'
        assert fix_xml_text(text) == (text, [])

    def test_stray_ampersand(self):
        """A bare & is escaped and reported on its line."""
        fixed, fixes = fix_xml_text("<epic>\n<description>R&D</description>\n</epic>")
        assert fixed == "<epic>\n<description>R&amp;D</description>\n</epic>"
        assert [(f.line, f.description) for f in fixes] == [(2, "Escaped & as &amp;")]
        assert parse_error(fixed) is None

    def test_stray_less_than(self):
        """A `<` followed by a space or digit cannot open a tag."""
        fixed, fixes = fix_xml_text("<epic><description>x < 5 and y <3</description></epic>")
        assert fixed == "<epic><description>x &lt; 5 and y &lt;3</description></epic>"
        assert len(fixes) == 2

    def test_unterminated_entity(self):
        """A named entity missing only its semicolon is completed, not double-escaped."""
        fixed, fixes = fix_xml_text("<epic>salt &amp pepper</epic>")
        assert fixed == "<epic>salt &amp; pepper</epic>"
        assert [f.description for f in fixes] == ["Terminated entity &amp with ';'"]

    def test_ampersand_in_attribute(self):
        fixed, _ = fix_xml_text('<epic name="Q&A"/>')
        assert fixed == '<epic name="Q&amp;A"/>'

    def test_comments_and_declarations_kept(self):
        """<? and <!-- still open markup."""
        text = '<?xml version="1.0"?>\n<!-- note --><epic/>'
        assert fix_xml_text(text) == (text, [])

    def test_fix_to_dict(self):
        _, fixes = fix_xml_text("<a>&</a>")
        assert fixes[0].to_dict() == {"line": 1, "description": "Escaped & as &amp;"}


class TestParseError:
    def test_well_formed(self):
        assert parse_error("<epic/>") is None

    def test_reports_position(self):
        """The parser message includes the failing line."""
        assert "line 1" in parse_error("<epic><phases></epic>")
