"""
Static copy for the marketing pages.
"""

FILM = {
    "title": "CRAK HACK",
    "byline": "A Short Film by Brendan Cleaves",
    "tagline": "A signal slips in. The visor stays on. Reality glitches.",
    "synopsis": (
        "A sci-fi horror about a man whose VR headset is hacked. The world "
        "around him dulls, then distorts, then refuses to let him go."
    ),
    "statement_heading": "A dark comedy about control, shame, and the devices we trust.",
    "statement": [
        "The spark for Crak Hack came from a junk email. One of those absurd warnings: "
        "“We’ve been spying on you.” It’s funny at first, then it gets under "
        "your skin. What if someone really did hijack your devices?",
        "The film became a satire of modern fear: losing control of our privacy, our "
        "devices, and ourselves. The humor cuts through the dread.",
        "The threats are real. Sextortion scams, spyware, and connected devices that can "
        "be hijacked without consent. Crak Hack is a warning, but it’s also a release valve.",
    ],
    "copyright": "Copyright 2025",
}

SOCIAL_LINKS = [
    {"label": "Instagram", "url": "https://www.instagram.com/crakhackfilm"},
    {"label": "IMDb", "url": "https://www.imdb.com/title/tt39457194/"},
]

PROFILES = [
    {"name": "Brendan Cleaves", "role": "Writer / Director", "bio": "Profile loading…", "image": "/images/brendan-cleaves.png"},
    {
        "name": "Howard Mills",
        "role": "Director of Photography",
        "bio": (
            "A London-based cinematographer working across narrative, documentary, and commercial "
            "projects. His debut feature Retreat is on the 2024 festival circuit. He is a member of BAFTA Crew."
        ),
        "image": "/images/howard-mills.png",
    },
    {
        "name": "Ryan McCarthy",
        "role": "Art Director",
        "bio": (
            "Trained in Architecture and Critical Design, he has worked across commercials and television "
            "for brands including Virgin Media and Magnum, and networks such as Netflix, Syfy, and ITV."
        ),
        "image": "/images/ryan-mccarthy.png",
    },
    {"name": "Johnny Vivash", "role": "Lead Actor", "bio": "Bio coming soon.", "image": "/images/johnny-vivash.png"},
    {"name": "Amanda Lara Kay", "role": "Lead Actress", "bio": "Profile loading…", "image": "/images/amanda-lara-kay.png"},
    {
        "name": "Sanj Surati",
        "role": "Lead Support",
        "bio": (
            "London-born stand-up comedian, improviser, and actor. He currently appears in the West End "
            "in the Japanese improvisation show Batsu! and is a trustee of the English Touring Theatre."
        ),
        "image": "/images/sanj-surati.png",
    },
    {
        "name": "Jon Draper",
        "role": "VFX Artist",
        "bio": "Founder of Stormy Studio and AIAnimation.com, with 20+ years’ experience in animation.",
        "image": "/images/jon-draper.png",
    },
    {
        "name": "Joe Holweger",
        "role": "Music Composer",
        "bio": (
            "A composer and actor from London who has scored a number of short films after touring "
            "as a professional musician, including with Adam Ant."
        ),
        "image": "/images/joe-holweger.png",
    },
]
