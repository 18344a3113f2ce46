from softcatalog.categories import SoftwareCategory, categorize, display_name


def test_keyword_matches_name_or_publisher() -> None:
    assert categorize("Visual Studio Code", "Microsoft Corporation") == SoftwareCategory.DEVELOPMENT
    assert categorize("Steam", "Valve Corporation") == SoftwareCategory.GAMING_PLATFORMS
    assert categorize("VLC media player", "VideoLAN") == SoftwareCategory.MEDIA
    assert categorize("Something", "Malwarebytes") == SoftwareCategory.SECURITY


def test_keywords_respect_word_boundaries() -> None:
    assert categorize("Knowledge Base Reader") == SoftwareCategory.OTHER
    assert categorize("Digital Photo Frame") == SoftwareCategory.OTHER


def test_publisher_lookup_and_location_hint() -> None:
    assert categorize("Teams Helper Service", None) == SoftwareCategory.COMMUNICATION
    assert categorize("Unknown Tool", "The Document Foundation") == SoftwareCategory.OFFICE_PRODUCTIVITY
    assert (
        categorize("Half-Life 2", "Valve", r"C:\Program Files (x86)\Steam\steamapps\common\Half-Life 2")
        == SoftwareCategory.GAMING_PLATFORMS
    )


def test_empty_name_is_other() -> None:
    assert categorize("") == SoftwareCategory.OTHER
    assert categorize("   ", "Adobe Inc.") == SoftwareCategory.OTHER


def test_parse_and_display_name() -> None:
    assert SoftwareCategory.parse("games") is SoftwareCategory.GAMES
    assert SoftwareCategory.parse("GAMING_PLATFORMS") is SoftwareCategory.GAMING_PLATFORMS
    assert SoftwareCategory.parse("nonsense") is SoftwareCategory.OTHER
    assert SoftwareCategory.parse(None) is SoftwareCategory.OTHER
    assert display_name(SoftwareCategory.DESIGN) == "Design & Graphics"
