"""reference_values.py

Fixed values for the Meta bulk-import sheet.

These come from the reference campaign export the account team signed off on.
Only names, dates, budget, landing page, radius targeting and the ad copy vary
per row; everything else is constant.
"""

from __future__ import annotations

import json
from typing import Dict, Tuple

DEFAULT_LANDING_PAGE = "https://waxcenter.com"
DISPLAY_LINK = "waxcenter.com"

DEFAULT_PLACEMENTS = (
    "Default, Default, Default, Default, audience_network classic, facebook biz_disco_feed, "
    "facebook facebook_reels, facebook facebook_reels_overlay, facebook feed, facebook instream_video, "
    "facebook marketplace, facebook right_hand_column, facebook search, facebook story, "
    "facebook video_feeds, instagram explore, instagram reels, instagram story, instagram stream, "
    "messenger story"
)

CAMPAIGN_SETTINGS: Dict[str, str] = {
    "campaign_status": "ACTIVE",
    "campaign_objective": "Outcome Engagement",
    "buying_type": "AUCTION",
    "new_objective": "Yes",
    "buy_with_prime_type": "NONE",
    "is_budget_scheduling_enabled": "No",
    "high_demand_periods": "[]",
    "buy_with_integration_partner": "NONE",
}

INTERESTS = [
    {
        "interests": [
            {"id": "6002997877444", "name": "Waxing"},
            {"id": "6003095705016", "name": "Beauty & Fashion"},
            {"id": "6003152657675", "name": "Wellness SPA"},
            {"id": "6003244295567", "name": "Self care"},
            {"id": "6003251053061", "name": "Shaving"},
            {"id": "6003393295343", "name": "Health And Beauty"},
            {"id": "6003503807196", "name": "European Wax Center"},
            {"id": "6003522953242", "name": "Brazilian Waxing"},
            {"id": "6015279452180", "name": "Bombshell Brazilian Waxing & Beauty Lounge"},
        ]
    }
]

ADSET_SETTINGS: Dict[str, str] = {
    "run_status": "ACTIVE",
    "lifetime_impressions": "0",
    "destination_type": "UNDEFINED",
    "use_accelerated_delivery": "No",
    "is_budget_scheduling_enabled": "No",
    "high_demand_periods": "[]",
    "link_object_id": "o:108555182262",
    "optimized_conversion_tracking_pixels": "tp:1035642271793092",
    "optimized_event": "SCHEDULE",
    "location_types": "home, recent",
    "excluded_regions": "Alaska US, Wyoming US",
    "gender": "Women",
    "age_min": "18",
    "age_max": "54",
    "excluded_custom_audiences": "120213927766160508:AUD-FBAllPriorServicedCustomers",
    "flexible_inclusions": json.dumps(INTERESTS, separators=(",", ":")),
    "targeting_relaxation": "custom_audience: Off, lookalike: Off",
    "brand_safety_filtering": "FACEBOOK_STANDARD, AN_STANDARD, FEED_RELAXED",
    "optimization_goal": "OFFSITE_CONVERSIONS",
    "attribution_spec": '[{"event_type":"CLICK_THROUGH","window_days":1}]',
    "billing_event": "IMPRESSIONS",
}

AD_SETTINGS: Dict[str, str] = {
    "status": "ACTIVE",
    "preview_link": "https://www.facebook.com/?feed_demo_ad=120228258706880508&h=AQCXa9GVq2c5YDX-hxc",
    "instagram_preview_link": "https://www.instagram.com/p/DLShxy_sE-_/",
    "ad_format": "Link Page Post Ad",
    "title": "Get your First Wax Free",
    "body": "You learn something new everyday",
    "call_to_action": "BOOK_TRAVEL",
    "optimize_text_per_person": "No",
    "conversion_tracking_pixels": "tp:1035642271793092",
    "image_hash": "303541819130038:d28e1dc58e7fcc7ac6d3e309eac2d3ad",
    "video_thumbnail_url": (
        "https://scontent-dfw5-1.xx.fbcdn.net/v/t15.13418-10/"
        "467701760_926931896038122_8058283634477458555_n.jpg?stp=dst-jpg_tt6&_nc_cat=103&ccb=1-7"
        "&_nc_sid=ace027&_nc_oc=AdlRhXqk3kXyhfvnEB8Qa7Oe8kveKql6aq7ivD7J8C1oa6U_ViFu5l3ECSLnLDYj1YI"
        "&_nc_ad=z-m&_nc_cid=0&_nc_zt=23&_nc_ht=scontent-dfw5-1.xx&_nc_gid=DprWR9RBxU4CVd-KxeA7MA"
        "&oh=00_AfPBEpbKMyhLvJjipyeZU_KeCjc8t-5S7HwTZ6zRx7Td_Q&oe=685FA2F2"
    ),
    "image_placement": "Default",
    "additional_image_1_hash": "303541819130038:0642b7ec8b997de13d35e3760f43ee2e",
    "additional_image_1_placement": "audience_network classic",
    "creative_type": "Link Page Post Ad",
    # Meta expands these placeholders at delivery time
    "url_tags": (
        "utm_source=facebook&utm_medium=cpc&utm_campaign={{campaign.name}}&utm_content={{ad.name}}"
        "&acadia_source=facebook&acadia_medium=cpc&utm_term={{adset.name}}&placement={{placement}}"
    ),
    "video_id": "v:1794899587789121",
    "video_placement": (
        "facebook biz_disco_feed, facebook facebook_reels_overlay, facebook feed, "
        "facebook instream_video, facebook marketplace, facebook video_feeds, instagram explore, "
        "instagram stream"
    ),
    "additional_video_1_id": "v:1243573153921320",
    "additional_video_1_placement": (
        "facebook facebook_reels, facebook right_hand_column, facebook search, facebook story, "
        "instagram reels, instagram story, messenger story"
    ),
    "additional_video_1_thumbnail_url": (
        "https://scontent-dfw5-2.xx.fbcdn.net/v/t15.13418-10/"
        "467256659_543283285137927_5402167441693162688_n.jpg?stp=dst-jpg_tt6&_nc_cat=102&ccb=1-7"
        "&_nc_sid=ace027&_nc_oc=Adl-w5-p4KgKcpfNbwFCMI8p2z8bvGQvk3O2EUHsARUHic1iLG7nej7NHJZf5vrcj-w"
        "&_nc_ad=z-m&_nc_cid=0&_nc_zt=23&_nc_ht=scontent-dfw5-2.xx&_nc_gid=DprWR9RBxU4CVd-KxeA7MA"
        "&oh=00_AfMi8ih1MsPowL9pJrKsL6C9UW1sfWFo4HOhjCFJSCvgkA&oe=685F93A7"
    ),
    "instagram_account_id": "x:602557576501192",
    "additional_custom_tracking_specs": "[]",
    "video_retargeting": "No",
    "permalink": (
        "https://www.facebook.com/100067578193272/posts/"
        "pfbid02f9M3ZgPPTqtYjvm3MzhNwE4HVV1BUT4cmZEactPNPvgPUgCnFVYC4GQ6E5pAeCQl"
        "?dco_ad_id=120228258706880508"
    ),
    "use_page_as_actor": "No",
    "degrees_of_freedom_type": "USER_ENROLLED_AUTOFLOW",
}

# Iowa zip codes excluded from every local campaign.
EXCLUDED_ZIP_CODES: Tuple[str, ...] = tuple(
    """
    50001 50002 50003 50005 50006 50007 50008 50009 50010 50012 50013 50014
    50020 50021 50022 50023 50025 50026 50027 50028 50029 50031 50032 50033
    50034 50035 50036 50038 50039 50040 50041 50042 50044 50046 50047 50048
    50049 50050 50051 50052 50054 50055 50056 50057 50058 50059 50060 50061
    50062 50063 50064 50065 50066 50067 50068 50069 50070 50071 50072 50073
    50074 50075 50076 50078 50099 50101 50102 50103 50104 50105 50106 50107
    50108 50109 50110 50111 50112 50115 50116 50117 50118 50119 50120 50122
    50123 50124 50125 50126 50127 50128 50129 50130 50131 50132 50133 50134
    50135 50136 50137 50138 50139 50140 50141 50142 50143 50144 50145 50146
    50147 50148 50149 50150 50151 50152 50153 50154 50155 50156 50157 50158
    50160 50161 50162 50163 50164 50165 50166 50167 50168 50169 50170 50171
    50173 50174 50201 50206 50207 50208 50210 50211 50212 50213 50214 50216
    50217 50218 50219 50220 50222 50223 50225 50226 50227 50228 50229 50230
    50231 50232 50233 50234 50235 50236 50237 50238 50239 50240 50241 50242
    50243 50244 50246 50247 50248 50249 50250 50251 50252 50254 50255 50256
    50257 50258 50259 50261 50262 50263 50264 50265 50266 50268 50269 50271
    50272 50273 50274 50275 50276 50277 50278 50301 50302 50304 50305 50306
    50307 50308 50309 50310 50311 50312 50313 50314 50315 50316 50317 50318
    50319 50320 50321 50322 50323 50324 50325 50327 50328 50330 50331 50332
    50333 50334 50335 50339 50340 50347 50359 50360 50361 50363 50364 50367
    50369 50380 50391 50392 50393 50395 50396 50397 50398 50401 50402 50420
    50421 50423 50424 50426 50427 50428 50430 50431 50432 50433 50434 50435
    50436 50438 50439 50440 50441 50444 50446 50447 50448 50449 50450 50451
    50452 50453 50454 50455 50456 50457 50458 50459 50460 50461 50464 50465
    50466 50467 50468 50469 50470 50471 50472 50473 50475 50476 50477 50478
    50479 50480 50481 50482 50483 50484 50501 50510 50511 50514 50515 50516
    50517 50518 50519 50520 50521 50522 50523 50524 50525 50526 50527 50528
    50529 50530 50531 50532 50533 50535 50536 50538 50539 50540 50541 50542
    50543 50544 50545 50546 50548 50551 50552 50554 50556 50557 50558 50559
    50560 50561 50562 50563 50565 50566 50567 50568 50569 50570 50571 50573
    50574 50575 50576 50577 50578 50579 50581 50582 50583 50585 50586 50588
    50590 50591 50592 50593 50594 50595 50597 50598 50599 50601 50602 50603
    50604 50605 50606 50607 50608 50609 50611 50612 50613 50614 50616 50619
    50620 50621 50622 50623 50624 50625 50626 50627 50628 50629 50630 50631
    50632 50633 50634 50635 50636 50638 50641 50642 50643 50644 50645 50647
    50648 50649 50650 50651 50652 50653 50654 50655 50657 50658 50659 50660
    50662 50664 50665 50666 50667 50668 50669 50670 50671 50672 50673 50674
    50675 50676 50677 50680 50681 50682 50701 50702 50703 50704 50707 50801
    50830 50831 50833 50835 50836 50837 50839 50840 50841 50842 50843 50845
    50846 50847 50848 50849 50851 50853 50854 50857 50858 50859 50860 50861
    50862 50863 50864 50936 50950 50980 50981 50982 50983 51001 51002 51003
    51004 51005 51006 51007 51008 51009 51010 51011 51012 51014 51015 51016
    51018 51019 51020 51022 51023 51024 51025 51026 51027 51028 51029 51030
    51031 51033 51034 51035 51036 51037 51038 51039 51040 51041 51044 51045
    51046 51047 51048 51049 51050 51051 51052 51053 51054 51055 51056 51058
    51060 51061 51062 51063 51101 51102 51103 51104 51105 51106 51108 51109
    51111 51201 51230 51231 51232 51234 51235 51237 51238 51239 51240 51241
    51242 51243 51244 51245 51246 51247 51248 51249 51250 51301 51331 51333
    51334 51338 51340 51341 51342 51343 51345 51346 51347 51350 51351 51354
    51355 51357 51358 51360 51363 51364 51365 51366 51401 51430 51431 51432
    51433 51436 51439 51440 51441 51442 51443 51444 51445 51446 51447 51448
    51449 51450 51451 51452 51453 51454 51455 51458 51459 51460 51461 51462
    51463 51465 51466 51467 51501 51503 51510 51520 51521 51523 51525 51526
    51527 51528 51529 51530 51531 51532 51533 51534 51535 51536 51537 51540
    51541 51542 51543 51544 51545 51546 51548 51549 51550 51551 51552 51553
    51554 51555 51556 51557 51558 51559 51560 51561 51562 51563 51564 51565
    51566 51570 51571 51572 51573 51575 51576 51577 51578 51579 51601 51630
    51631 51632 51636 51637 51638 51639 51640 51645 51646 51647 51648 51649
    51650 51651 51652 51653 51654 51656 52001 52002 52003 52030 52031 52032
    52033 52035 52036 52037 52038 52039 52040 52041 52042 52043 52044 52045
    52046 52047 52048 52049 52050 52052 52053 52054 52056 52057 52060 52064
    52065 52066 52068 52069 52070 52071 52072 52073 52074 52075 52076 52077
    52078 52079 52101 52132 52133 52134 52135 52136 52140 52141 52142 52144
    52146 52147 52151 52154 52155 52156 52157 52158 52159 52160 52161 52162
    52163 52164 52165 52166 52168 52169 52170 52171 52172 52175 52201 52202
    52203 52205 52206 52207 52208 52209 52210 52211 52212 52213 52214 52215
    52216 52217 52218 52219 52220 52221 52222 52223 52224 52225 52227 52228
    52229 52231 52232 52233 52235 52236 52237 52240 52241 52242 52245 52246
    52247 52248 52249 52251 52252 52253 52254 52255 52257 52301 52302 52305
    52306 52307 52308 52309 52310 52312 52313 52314 52315 52316 52317 52318
    52320 52321 52322 52323 52324 52325 52326 52327 52328 52329 52330 52332
    52333 52334 52335 52336 52337 52338 52339 52340 52341 52342 52344 52345
    52346 52347 52348 52349 52351 52352 52353 52354 52355 52356 52358 52359
    52361 52362 52401 52402 52403 52404 52405 52411 52501 52530 52531 52533
    52534 52535 52536 52537 52540 52542 52543 52544 52548 52549 52550 52551
    52552 52553 52554 52555 52556 52557 52560 52561 52562 52563 52565 52566
    52567 52568 52569 52570 52571 52572 52573 52574 52576 52577 52580 52581
    52583 52584 52585 52586 52588 52590 52591 52593 52594 52595 52601 52619
    52620 52621 52623 52624 52625 52626 52627 52630 52631 52632 52635 52637
    52638 52639 52640 52641 52644 52645 52646 52647 52649 52650 52651 52652
    52653 52654 52655 52656 52657 52658 52659 52660 52701 52720 52721 52727
    52729 52730 52731 52732 52737 52738 52739 52742 52747 52749 52750 52751
    52752 52754 52755 52757 52758 52759 52760 52761 52765 52766 52771 52772
    52774 52776 52777 52778 52801
    """.split()
)

EXCLUDED_ZIP = ", ".join(f"US:{z}" for z in EXCLUDED_ZIP_CODES)


def _compact(value: str) -> str:
    return "".join(value.split())


def generate_campaign_name(
    location_name: str,
    month: str,
    day: str,
    *,
    prefix: str = "EWC",
    platform: str = "Meta",
    objective: str = "Engagement",
    test_type: str = "LocalTest",
) -> str:
    """EWC_Meta_June25_Engagement_LocalTest_Uptown"""
    return f"{prefix}_{platform}_{month}{day}_{objective}_{test_type}_{_compact(location_name)}"


def generate_ad_set_name(location_name: str, month: str, day: str, **kwargs: str) -> str:
    return f"{generate_campaign_name(location_name, month, day, **kwargs)}_{month}"


def generate_ad_name(location_name: str, month: str, day: str, **kwargs: str) -> str:
    # same pattern as the ad set
    return generate_ad_set_name(location_name, month, day, **kwargs)
