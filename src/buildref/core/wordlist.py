"""シード文字列 → 覚えやすい単語への決定的な写像.

ビルドを完全なハッシュ比較なしに目で区別できるよう、任意の文字列を固定語彙の
1単語に変換します。

設計方針:
    - 同じシードは常に同じ単語になる（Python組み込みの hash() はプロセス毎に
      ランダム化されるため使わない）
    - SHA-256 の先頭8バイトをビッグエンディアン整数として語彙数で剰余を取る
    - WORDS またはハッシュ方式を変えると過去の短縮名がすべて変わるので変更しない
"""

from __future__ import annotations

import hashlib

WORDS: tuple[str, ...] = (
    "acorn", "adder", "agate", "alder", "almond", "amber", "anchor", "anvil",
    "apple", "apricot", "arbor", "arrow", "aspen", "aster", "atlas", "aurora",
    "badger", "bamboo", "banjo", "barley", "basil", "beacon", "beaver", "birch",
    "bison", "bloom", "bluff", "bobcat", "bonsai", "boulder", "bramble", "breeze",
    "brook", "buffalo", "cactus", "camel", "canyon", "caramel", "cardinal", "cashew",
    "cedar", "cello", "cherry", "chestnut", "cinder", "citrus", "clover", "cobalt",
    "comet", "condor", "copper", "coral", "cosmos", "cougar", "coyote", "crane",
    "cricket", "crystal", "cypress", "dahlia", "daisy", "delta", "denim", "dingo",
    "dolphin", "dove", "dragon", "drift", "dune", "eagle", "ember", "emerald",
    "falcon", "fennel", "fern", "ferret", "fig", "finch", "fjord", "flint",
    "forest", "fossil", "fox", "frost", "galaxy", "garnet", "gazelle", "gecko",
    "geyser", "ginger", "glacier", "granite", "grove", "gull", "harbor", "hazel",
    "heron", "hickory", "honey", "horizon", "husky", "ibis", "iguana", "indigo",
    "iris", "island", "ivory", "jackal", "jade", "jaguar", "jasmine", "jasper",
    "juniper", "kayak", "kelp", "kestrel", "kiwi", "koala", "lagoon", "lantern",
    "lark", "laurel", "lava", "lemon", "lemur", "lilac", "lily", "linden",
    "lotus", "lynx", "magnet", "magpie", "mango", "maple", "marble", "marlin",
    "meadow", "meteor", "mint", "mole", "monsoon", "moose", "moss", "nebula",
    "nectar", "newt", "nickel", "nutmeg", "oak", "oasis", "ocean", "ocelot",
    "olive", "onyx", "opal", "orbit", "orchid", "osprey", "otter", "owl",
    "panda", "panther", "papaya", "parrot", "peach", "pebble", "pelican", "pepper",
    "petal", "pine", "piper", "plum", "polar", "poppy", "prairie", "prism",
    "puffin", "quail", "quartz", "quill", "rabbit", "raven", "reef", "ridge",
    "river", "robin", "rocket", "rose", "ruby", "saffron", "sage", "salmon",
    "sapphire", "sequoia", "shadow", "shark", "sierra", "silver", "sparrow", "spruce",
    "squid", "starling", "stone", "summit", "sunset", "swallow", "swan", "tango",
    "tapir", "thistle", "thunder", "tiger", "timber", "topaz", "toucan", "trout",
    "tulip", "tundra", "turtle", "twilight", "valley", "velvet", "violet", "viper",
    "walnut", "walrus", "willow", "wombat", "wren", "yak", "yarrow", "zebra",
    "zenith", "zephyr", "zinc", "zinnia", "basalt", "bayou", "cobra", "dusk",
    "egret", "ermine", "gopher", "hornet", "mesa", "mink", "narwhal", "pika",
    "gannet", "hyena", "kudzu", "lichen", "manatee", "nettle", "oriole", "puma",
)


def _seed_index(seed: str, size: int) -> int:
    # 孤立サロゲートを含む文字列も符号化できるよう surrogatepass を使う
    digest = hashlib.sha256(seed.encode("utf-8", errors="surrogatepass")).digest()
    return int.from_bytes(digest[:8], "big") % size


def select_word(seed: str) -> str:
    """シード文字列から語彙の1単語を選ぶ.

    全域関数であり、どんな文字列（空文字列を含む）でも必ず WORDS の
    いずれか1つを返します。

    Args:
        seed: 任意の文字列

    Returns:
        WORDS に含まれる単語
    """
    return WORDS[_seed_index(seed, len(WORDS))]
